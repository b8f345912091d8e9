"""
ドメイン例外

コマンド/クエリ層はこれらを送出し、アプリの例外ハンドラが HTTP ステータスに変換する。
"""


class PatternLabError(Exception):
    """全ドメイン例外の基底クラス"""


class NotFoundError(PatternLabError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class OutboxEventNotFoundError(NotFoundError):
    pass


class ConflictError(PatternLabError):
    pass


class InvalidOrderStateError(ConflictError):
    """現在のステータスでは許可されない状態遷移"""


class InsufficientStockError(ConflictError):
    pass


class EventAlreadyProcessedError(ConflictError):
    pass


# ── 構造化並行処理 ────────────────────────────────


class SubtaskFailedError(PatternLabError):
    """スコープ内のサブタスクが失敗し、残りが取り消された"""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = errors
        super().__init__(f"{len(errors)} subtask(s) failed: {errors[0]}" if errors else "subtask failed")


class AllSubtasksFailedError(PatternLabError):
    """成功したサブタスクが 1 つもない"""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = errors
        super().__init__(f"All {len(errors)} subtask(s) failed")


class RetryExhaustedError(PatternLabError):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempt(s): {last_error}")


class ServiceUnavailableError(PatternLabError):
    """模擬した外部サービスが応答しない"""
