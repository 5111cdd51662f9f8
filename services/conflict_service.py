"""
衝突服務：兩份玩家快照的比對與 last-write-wins 決策

純計算邏輯，不保存任何狀態
"""
import hashlib
import json
from typing import List

from core.constants import MONEY_TOLERANCE
from models import PlayerRecord
from services.valuation_service import differs

FINGERPRINT_LENGTH = 16

_DIFF_FIELDS = (
    ("cash_balance", "Cash"),
    ("portfolio_value", "Portfolio"),
    ("total_value", "Total"),
)


def fingerprint(record: PlayerRecord) -> str:
    """
    產生玩家狀態的短指紋

    涵蓋欄位：name、cash_balance、portfolio_value、total_value、portfolio

    portfolio 以排序後的 key 序列化，所以兩份邏輯上相同、但插入順序不同的
    持倉會得到相同的指紋：
        {"BTC": 1, "ETH": 2} 和 {"ETH": 2, "BTC": 1} -> 同一個指紋

    返回：
        16 個字元的 hex 字串（SHA-256 前綴）
    """
    document = {
        "name": record.name,
        "cashBalance": record.cash_balance,
        "portfolioValue": record.portfolio_value,
        "totalValue": record.total_value,
        "portfolio": record.portfolio,
    }
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def diff(local: PlayerRecord, remote: PlayerRecord) -> List[str]:
    """
    列出兩份快照之間超過容忍值的金額差異

    範例：
        ["Cash: Local €100.0 vs Remote €120.0"]

    返回：
        每個不一致欄位一行；完全一致時回傳空 list
    """
    lines = []
    for attr, label in _DIFF_FIELDS:
        local_value = getattr(local, attr)
        remote_value = getattr(remote, attr)
        if differs(local_value, remote_value, MONEY_TOLERANCE):
            lines.append(f"{label}: Local €{local_value} vs Remote €{remote_value}")
    return lines


def resolve(a: PlayerRecord, b: PlayerRecord) -> PlayerRecord:
    """
    Last-write-wins：last_update 較新的一方勝出

    last_update 完全相同時，a 勝出（固定的 tie-break）
    """
    return b if b.last_update > a.last_update else a
