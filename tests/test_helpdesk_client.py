"""Tests for the helpdesk client used for human handoff."""

from unittest.mock import AsyncMock

import pytest

from mostrador.integrations.helpdesk.client import HelpdeskClient


@pytest.fixture
def client() -> HelpdeskClient:
    return HelpdeskClient(base_url="https://desk.test/", access_token="tok", account_id=7)


class TestHelpdeskClient:
    """Tests for HelpdeskClient."""

    def test_headers(self, client: HelpdeskClient) -> None:
        assert client.headers["api_access_token"] == "tok"

    @pytest.mark.asyncio
    async def test_send_private_message(self, client: HelpdeskClient, mock_helpdesk_http: AsyncMock) -> None:
        data = await client.send_message("42", "nota", private=True)
        assert data == {"id": 1}
        url = mock_helpdesk_http.post.call_args.args[0]
        assert url == "https://desk.test/api/v1/accounts/7/conversations/42/messages"
        assert mock_helpdesk_http.post.call_args.kwargs["json"]["private"] is True

    @pytest.mark.asyncio
    async def test_assign_to_human(self, client: HelpdeskClient, mock_helpdesk_http: AsyncMock) -> None:
        await client.assign_to_human("42", "Cambio de talle")

        note, toggle = mock_helpdesk_http.post.call_args_list
        assert note.kwargs["json"]["content"] == "Derivado por el asistente: Cambio de talle"
        assert note.kwargs["json"]["private"] is True
        assert toggle.args[0].endswith("/conversations/42/toggle_status")
        assert toggle.kwargs["json"] == {"status": "open"}
