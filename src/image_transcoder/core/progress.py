"""批量操作的进度事件。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """``run_all`` 每推进一条记录发出一次；被删除而跳过的记录同样计入 ``completed``。"""

    operation: str
    total: int
    completed: int
    current_name: Optional[str] = None
    finished: bool = False

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.completed / self.total

    def describe(self) -> str:
        if self.finished:
            return f"{self.operation} 完成：{self.completed}/{self.total}"
        if self.current_name:
            return f"{self.operation} [{self.completed}/{self.total}] {self.current_name}"
        return f"{self.operation} 开始：共 {self.total} 张"
