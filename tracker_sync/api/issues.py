"""Issue endpoints: snapshot reads and optimistic mutations"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from tracker_sync.errors import IllegalTransition
from tracker_sync.runtime import Runtime

router = APIRouter(prefix="/api/issues", tags=["issues"])


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


class IssueCreate(BaseModel):
    title: str
    description: str = ""
    severity: str
    type: str


class EliminateRequest(BaseModel):
    issue_ids: List[int]


class WindowResponse(BaseModel):
    token: str
    issue_ids: List[int]
    status: str
    expires_at: str


class SyncStatusResponse(BaseModel):
    loading: bool
    polling: bool
    pending_deletion: List[int]
    issue_count: int


def _window_response(window) -> WindowResponse:
    return WindowResponse(
        token=window.token,
        issue_ids=window.issue_ids,
        status=window.status.value,
        expires_at=window.expires_at.isoformat(),
    )


def _cached_or_404(runtime: Runtime, issue_id: int):
    issue = runtime.store.get(issue_id)
    if issue is None:
        raise HTTPException(status_code=404, detail=f"Issue {issue_id} not found")
    return issue


def _result_or_error(runtime: Runtime, issue):
    if issue is None:
        messages = runtime.errors.messages
        raise HTTPException(status_code=502, detail=messages[-1] if messages else "Remote update failed")
    return issue.to_dict()


@router.get("/")
def list_issues(runtime: Runtime = Depends(get_runtime)):
    """Current cache snapshot"""
    return [issue.to_dict() for issue in runtime.store.issues.value]


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(runtime: Runtime = Depends(get_runtime)):
    return SyncStatusResponse(
        loading=runtime.poller.loading.value,
        polling=runtime.poller.is_polling,
        pending_deletion=sorted(runtime.mutations.pending_deletion.value),
        issue_count=len(runtime.store),
    )


@router.get("/errors", response_model=List[str])
def recent_errors(runtime: Runtime = Depends(get_runtime)):
    return runtime.errors.messages


@router.get("/{issue_id}")
async def get_issue(issue_id: int, runtime: Runtime = Depends(get_runtime)):
    issue = await runtime.service.get_issue(issue_id)
    if issue is None:
        raise HTTPException(status_code=404, detail=f"Issue {issue_id} not found")
    return issue.to_dict()


@router.post("/")
async def create_issue(payload: IssueCreate, runtime: Runtime = Depends(get_runtime)):
    issue = await runtime.mutations.create_issue(
        payload.title, payload.description, payload.severity, payload.type
    )
    return _result_or_error(runtime, issue)


@router.post("/{issue_id}/delete", response_model=WindowResponse)
async def delete_issue(issue_id: int, runtime: Runtime = Depends(get_runtime)):
    try:
        window = runtime.mutations.delete_issue(issue_id)
    except IllegalTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _window_response(window)


@router.post("/{issue_id}/undo")
async def undo_delete(issue_id: int, runtime: Runtime = Depends(get_runtime)):
    try:
        issue = await runtime.mutations.undelete_issue(issue_id)
    except IllegalTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _result_or_error(runtime, issue)


@router.post("/eliminate", response_model=WindowResponse)
async def eliminate_issues(payload: EliminateRequest, runtime: Runtime = Depends(get_runtime)):
    try:
        window = runtime.mutations.eliminate_issues(payload.issue_ids)
    except IllegalTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _window_response(window)


@router.post("/windows/{token}/undo")
async def undo_window(token: str, runtime: Runtime = Depends(get_runtime)):
    window = runtime.mutations.get_window(token)
    if window is None:
        raise HTTPException(status_code=404, detail="Undo window not found or already closed")
    try:
        restored = await window.undo()
    except IllegalTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return [issue.to_dict() for issue in restored]


@router.post("/{issue_id}/responded")
async def mark_as_responded(issue_id: int, runtime: Runtime = Depends(get_runtime)):
    issue = _cached_or_404(runtime, issue_id)
    return _result_or_error(runtime, await runtime.mutations.mark_as_responded(issue))


@router.post("/{issue_id}/pending")
async def mark_as_pending(issue_id: int, runtime: Runtime = Depends(get_runtime)):
    issue = _cached_or_404(runtime, issue_id)
    return _result_or_error(runtime, await runtime.mutations.mark_as_pending(issue))
