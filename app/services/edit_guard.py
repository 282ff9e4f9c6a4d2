"""
Unsaved quantity edit guard for approval actions.

An EditSession holds at most one in-flight quantity edit. Any approval
request made while that edit differs from the stored quantity is parked and
answered with a ConflictPrompt; resolving the prompt saves or discards the
edit and then replays the parked request.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from app.models.user import User
from app.utils.validators import to_decimal

logger = logging.getLogger(__name__)


class PendingActionKind(str, Enum):
    SINGLE = "single"
    GROUPED = "grouped"
    BATCH = "batch"
    EDIT_SWITCH = "edit_switch"


@dataclass
class PendingAction:
    kind: PendingActionKind
    run: Optional[Callable[[], Any]] = None
    # edit_switch 專用：下一個要編輯的明細
    target_item_id: Optional[int] = None
    target_quantity: Optional[Decimal] = None


@dataclass
class ActiveEdit:
    item_id: int
    original_quantity: Decimal
    edit_quantity: Decimal

    @property
    def has_delta(self) -> bool:
        return self.edit_quantity != self.original_quantity


@dataclass
class ConflictPrompt:
    item_id: int
    original_quantity: Decimal
    edit_quantity: Decimal
    pending_action: PendingAction
    message: str = "有未保存的数量修改，请选择保存后继续或放弃修改后继续"


@dataclass
class GuardOutcome:
    executed: bool
    result: Any = None
    prompt: Optional[ConflictPrompt] = None
    saved_item: Any = field(default=None, repr=False)


class EditSession:
    """數量修改的未儲存狀態守衛"""

    def __init__(self, approval_service, modifier: User):
        self.approval_service = approval_service
        self.modifier = modifier
        self.active_edit: Optional[ActiveEdit] = None
        self.pending_action: Optional[PendingAction] = None

    @property
    def has_unsaved_changes(self) -> bool:
        return self.active_edit is not None and self.active_edit.has_delta

    def start_edit(self, item_id: int, original_quantity) -> GuardOutcome:
        """開始編輯明細；已有其他未儲存修改時回傳衝突提示"""
        if self.active_edit is not None and self.active_edit.item_id != item_id and self.has_unsaved_changes:
            return self.request(PendingAction(
                kind=PendingActionKind.EDIT_SWITCH,
                target_item_id=item_id,
                target_quantity=to_decimal(original_quantity),
            ))

        self._begin(item_id, original_quantity)
        return GuardOutcome(executed=True)

    def _begin(self, item_id: int, original_quantity) -> None:
        quantity = to_decimal(original_quantity)
        self.active_edit = ActiveEdit(item_id=item_id, original_quantity=quantity, edit_quantity=quantity)

    def update_quantity(self, quantity) -> None:
        if self.active_edit is None:
            raise ValueError("当前没有正在编辑的明细")
        self.active_edit.edit_quantity = to_decimal(quantity)

    def save(self):
        """儲存目前的修改"""
        if self.active_edit is None:
            return None
        edit = self.active_edit
        item = self.approval_service.edit_quantity(edit.item_id, edit.edit_quantity, self.modifier)
        self.active_edit = None
        return item

    def discard(self) -> None:
        """放棄修改，數量回到原值"""
        if self.active_edit is not None:
            logger.info(f"放棄明細 {self.active_edit.item_id} 的未儲存修改")
        self.active_edit = None

    def request(self, action: PendingAction) -> GuardOutcome:
        """
        要求執行動作。

        沒有未儲存修改時立即執行；否則暫存動作並回傳衝突提示。
        """
        if not self.has_unsaved_changes:
            return self._execute(action)

        self.pending_action = action
        edit = self.active_edit
        return GuardOutcome(
            executed=False,
            prompt=ConflictPrompt(
                item_id=edit.item_id,
                original_quantity=edit.original_quantity,
                edit_quantity=edit.edit_quantity,
                pending_action=action,
            )
        )

    def resolve(self, save: bool) -> GuardOutcome:
        """
        處理衝突提示：先儲存或放棄修改，再執行原本暫存的動作。

        儲存失敗時保留修改與暫存動作，讓使用者重新選擇。
        """
        if self.pending_action is None:
            raise ValueError("没有等待处理的操作")

        saved_item = None
        if save:
            saved_item = self.save()
        else:
            self.discard()

        action = self.pending_action
        self.pending_action = None
        outcome = self._execute(action)
        outcome.saved_item = saved_item
        return outcome

    def _execute(self, action: PendingAction) -> GuardOutcome:
        if action.kind == PendingActionKind.EDIT_SWITCH:
            # 只切換編輯目標，不觸發審核
            self._begin(action.target_item_id, action.target_quantity)
            return GuardOutcome(executed=True)

        if action.run is None:
            raise ValueError(f"操作 {action.kind.value} 缺少执行内容")
        return GuardOutcome(executed=True, result=action.run())
