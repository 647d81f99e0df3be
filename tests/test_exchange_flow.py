"""Tests for the product exchange flow state machine."""

import json
from datetime import timedelta

from mostrador.schemas.ai import ToolInvocation
from mostrador.schemas.conversation_state import ExchangeStep, NewProductSelection
from mostrador.services.exchange_flow import (
    build_exchange_note,
    infer_next_exchange_step,
    new_exchange_state,
)
from tests.conftest import FIXED_NOW, order_payload, product_payload


def _inv(name: str, output: object) -> ToolInvocation:
    return ToolInvocation(id="call_1", name=name, output=output)


def _at(step: ExchangeStep):  # type: ignore[no-untyped-def]
    return new_exchange_state(FIXED_NOW).model_copy(update={"step": step})


class TestOrderValidation:
    """Identify customer / validate order steps."""

    def test_starts_at_identify_customer(self) -> None:
        state = infer_next_exchange_step(None, [], "Para empezar necesito tu email", FIXED_NOW)
        assert state.step is ExchangeStep.IDENTIFY_CUSTOMER
        assert state.started_at == FIXED_NOW

    def test_order_found_moves_to_select_product(self) -> None:
        state = infer_next_exchange_step(
            None, [_inv("get_last_order", json.dumps(order_payload()))], "", FIXED_NOW
        )
        assert state.step is ExchangeStep.SELECT_PRODUCT
        assert state.order_id == "9001"
        assert state.order_number == "1234"
        assert state.order_items[0].size == "M"
        assert state.order_items[0].color == "Negro"

    def test_two_failed_lookups_hand_off(self) -> None:
        failed = _inv("get_last_order", json.dumps({"error": "The customer has no orders"}))
        first = infer_next_exchange_step(None, [failed], "", FIXED_NOW)
        assert first.step is ExchangeStep.IDENTIFY_CUSTOMER
        assert first.validation_attempts == 1

        second = infer_next_exchange_step(first, [failed], "", FIXED_NOW + timedelta(minutes=1))
        assert second.validation_attempts == 2
        assert second.step is ExchangeStep.READY_FOR_HANDOFF

    def test_input_is_not_mutated(self) -> None:
        current = new_exchange_state(FIXED_NOW)
        infer_next_exchange_step(current, [_inv("get_last_order", order_payload())], "", FIXED_NOW)
        assert current.step is ExchangeStep.IDENTIFY_CUSTOMER
        assert current.order_id is None


class TestStockCheck:
    """New product selection and stock."""

    def test_in_stock_confirms(self) -> None:
        output = json.dumps({"products": [product_payload(stock=3)], "total": 1})
        state = infer_next_exchange_step(
            _at(ExchangeStep.CHECK_STOCK), [_inv("search_nuvemshop_products", output)], "", FIXED_NOW
        )
        assert state.step is ExchangeStep.CONFIRM_EXCHANGE
        assert state.new_product == NewProductSelection(product_id="101", name="Remera Básica", has_stock=True)

    def test_no_stock_asks_for_another(self) -> None:
        output = {"products": [product_payload(stock=0)]}
        state = infer_next_exchange_step(
            _at(ExchangeStep.CHECK_STOCK), [_inv("search_nuvemshop_products", output)], "", FIXED_NOW
        )
        assert state.step is ExchangeStep.GET_NEW_PRODUCT
        assert state.new_product is not None
        assert state.new_product.has_stock is False

    def test_search_outside_check_stock_keeps_step(self) -> None:
        output = {"products": [product_payload()]}
        state = infer_next_exchange_step(
            _at(ExchangeStep.SELECT_PRODUCT), [_inv("search_nuvemshop_products", output)], "", FIXED_NOW
        )
        assert state.step is ExchangeStep.SELECT_PRODUCT
        assert state.new_product is not None


class TestResponseTransitions:
    """Keyword transitions from the specialist's reply."""

    def test_select_product_to_get_new_product(self) -> None:
        state = infer_next_exchange_step(_at(ExchangeStep.SELECT_PRODUCT), [], "¿Qué talle querés?", FIXED_NOW)
        assert state.step is ExchangeStep.GET_NEW_PRODUCT

    def test_get_new_product_to_check_stock(self) -> None:
        state = infer_next_exchange_step(_at(ExchangeStep.GET_NEW_PRODUCT), [], "Ya verifico", FIXED_NOW)
        assert state.step is ExchangeStep.CHECK_STOCK

    def test_confirm_to_address(self) -> None:
        state = infer_next_exchange_step(
            _at(ExchangeStep.CONFIRM_EXCHANGE), [], "Pasame tu dirección", FIXED_NOW
        )
        assert state.step is ExchangeStep.GET_ADDRESS

    def test_address_to_handoff(self) -> None:
        state = infer_next_exchange_step(
            _at(ExchangeStep.GET_ADDRESS), [], "Te paso con el equipo", FIXED_NOW
        )
        assert state.step is ExchangeStep.READY_FOR_HANDOFF

    def test_no_keyword_keeps_step(self) -> None:
        state = infer_next_exchange_step(_at(ExchangeStep.GET_ADDRESS), [], "Perfecto", FIXED_NOW)
        assert state.step is ExchangeStep.GET_ADDRESS


class TestTerminal:
    """Transfer and terminal step."""

    def test_transfer_tool_is_terminal(self) -> None:
        state = infer_next_exchange_step(
            _at(ExchangeStep.SELECT_PRODUCT), [_inv("transfer_to_human", "{}")], "", FIXED_NOW
        )
        assert state.step is ExchangeStep.READY_FOR_HANDOFF
        assert state.policy_explained is True

    def test_ready_for_handoff_never_changes(self) -> None:
        current = _at(ExchangeStep.READY_FOR_HANDOFF)
        state = infer_next_exchange_step(
            current, [_inv("get_last_order", order_payload())], "¿Qué talle?", FIXED_NOW + timedelta(hours=1)
        )
        assert state == current


class TestExchangeNote:
    """Tests for build_exchange_note."""

    def test_none(self) -> None:
        assert build_exchange_note(None) is None

    def test_includes_collected_data(self) -> None:
        state = infer_next_exchange_step(None, [_inv("get_last_order", order_payload())], "", FIXED_NOW)
        note = build_exchange_note(state)
        assert note is not None
        assert "Current step: select_product" in note
        assert "Order: #1234 (open)" in note
        assert "Order items: Remera Básica M" in note
