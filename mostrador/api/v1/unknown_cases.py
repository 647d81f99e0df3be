"""Audit endpoints for turns the router could not map."""

from fastapi import APIRouter, Query

from mostrador.core.deps import UnknownCaseServiceDep
from mostrador.schemas.unknown_case import UnknownCaseResponse, UnknownCaseStats

router = APIRouter()


@router.get("", response_model=list[UnknownCaseResponse], summary="List recent unknown cases")
async def list_unknown_cases(
    service: UnknownCaseServiceDep,
    limit: int = Query(50, ge=1, le=500),
) -> list[UnknownCaseResponse]:
    return await service.get_recent(limit=limit)


@router.get("/stats", response_model=UnknownCaseStats, summary="Unknown case statistics")
async def unknown_case_stats(service: UnknownCaseServiceDep) -> UnknownCaseStats:
    return await service.get_stats()
