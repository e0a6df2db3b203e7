"""Paper account API."""

from fastapi import APIRouter

from papertrader.schemas.account import PaperAccountRead, PaperAdjustmentRead
from papertrader.services import paper_ledger

router = APIRouter(prefix="/api/paper-account", tags=["paper-account"])


@router.get("", response_model=PaperAccountRead)
def get_account(board_id: int, user_id: int):
    """The (board, user) account, created with the default balance on first access."""
    return paper_ledger.get_or_create(board_id, user_id)


@router.post("/reset", response_model=PaperAccountRead)
def reset_account(board_id: int, user_id: int):
    return paper_ledger.reset(board_id, user_id)


@router.get("/adjustments", response_model=list[PaperAdjustmentRead])
def list_adjustments(board_id: int, user_id: int, limit: int = 100):
    return paper_ledger.get_adjustments(board_id, user_id, limit=limit)
