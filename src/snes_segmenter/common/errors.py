"""
例外定義モジュール。

トレースの1経路だけを打ち切るローカルなエラー（デコード失敗、マップ外アドレス）と、
取り込み時に拒否されるヒントのエラーを定義します。
曖昧な制御フローや分類の衝突は例外ではなく、レポートの項目として扱われます。
"""
from enum import Enum
from typing import Any, Optional


# @intent:responsibility このパッケージが送出する全ての例外の基底クラス。
class SegmenterError(Exception):
    pass


# @intent:responsibility 命令デコード失敗の理由を定義します。
class DecodeFailure(Enum):
    UNDEFINED = "UNDEFINED"            # 予約済み/未定義オペコード
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"    # 命令がマップ済み領域の外まで読み出す


# @intent:responsibility 1命令のデコードに失敗したことを表します。
# @intent:rationale トレースの1経路のみを停止させるローカルなエラーであり、実行全体を中断しません。
class DecodeError(SegmenterError):
    def __init__(self, address: int, reason: DecodeFailure, detail: str = ""):
        self.address = address
        self.reason = reason
        self.detail = detail
        message = f"{reason.value} at ${address:06X}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


# @intent:responsibility ROMにマップされていないアドレス（WRAM、ハードウェアレジスタ等）へのアクセスを表します。
# @intent:rationale ROMイメージ範囲外の読み出しと同じくIndexErrorとしても捕捉できるようにします。
class MappingError(SegmenterError, IndexError):
    def __init__(self, address: int, detail: str = ""):
        self.address = address
        message = f"Address ${address:06X} is not mapped to ROM"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


# @intent:responsibility 取り込み時に拒否された外部ヒントを表します。
class InvalidHint(SegmenterError, ValueError):
    def __init__(self, hint: Any, reason: str, address: Optional[int] = None):
        self.hint = hint
        self.reason = reason
        self.address = address
        super().__init__(f"Invalid hint {hint!r}: {reason}")


# @intent:responsibility 設定ファイルの値が解釈できないことを表します。
class ConfigError(SegmenterError, ValueError):
    pass
