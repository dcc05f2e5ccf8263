from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from common.rules_engine.models import RuleExecution
from pipelines.repository import ExecutionHistory


router = APIRouter(tags=["executions"])


def get_history(request: Request) -> ExecutionHistory:
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Repository is not configured.")
    return repository


@router.get("/executions", response_model=List[RuleExecution])
def list_executions(
    limit: int = Query(100, ge=1, le=1000),
    history: ExecutionHistory = Depends(get_history),
):
    """Most recent executions first."""
    return history.list_executions(limit=limit)


@router.get("/executions/{execution_id}", response_model=RuleExecution)
def get_execution(execution_id: str, history: ExecutionHistory = Depends(get_history)):
    execution = history.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution


@router.get("/rules/{rule_id}/executions", response_model=List[RuleExecution])
def get_rule_executions(rule_id: str, history: ExecutionHistory = Depends(get_history)):
    return history.get_rule_executions(rule_id)
