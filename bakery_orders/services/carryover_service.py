from datetime import date
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from ..core.exceptions import BranchNotFoundError
from ..core.scope import Scope, ensure_branch_access
from ..repositories.catalog_repo import branch_repo
from ..repositories.order_repo import order_repo
from ..utils.date_utils import DateUtils


class CarryoverService:
    """Suggests carry-forward quantities from the previous business day."""

    def __init__(self, db: Session):
        self.db = db

    def get_carryover_candidates(self, scope: Scope, branch_id: int, base_date: date) -> List[Dict[str, Any]]:
        """
        Requested tray totals per product across the branch's orders created
        on the local calendar day before ``base_date``. Approval state is
        ignored: this is what the branch asked for, not what it received.
        """
        branch = branch_repo.get(self.db, branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        ensure_branch_access(scope, branch)

        created_from, created_to = DateUtils.previous_day_bounds(base_date)
        return order_repo.sum_requested_by_product(self.db, branch.id, created_from, created_to)
