"""
驗證服務：檢查並正規化不可信任的玩家資料

來源可能是玩家自己的裝置、第二台裝置或伺服器，一律視為不可信任。
輸入可以用 snake_case（cash_balance）或 camelCase（cashBalance）的 key。
"""
import math
from numbers import Real
from typing import Any, Mapping, Optional

from pydantic.alias_generators import to_camel

from core.clock import Clock, now_ms
from core.constants import DEFAULT_AVATAR
from models import PlayerRecord
from services.valuation_service import (
    calculate_total_value,
    differs,
    round_currency,
    validate_total_value,
)

_MONEY_FIELDS = ("cash_balance", "portfolio_value", "total_value")


def _get(candidate: Mapping[str, Any], name: str, default: Any = None) -> Any:
    if name in candidate:
        return candidate[name]
    return candidate.get(to_camel(name), default)


def _is_amount(value: Any) -> bool:
    """有限、非負的實數（bool 不算數字）"""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and value >= 0


def validate(candidate: Mapping[str, Any]) -> bool:
    """
    檢查玩家資料是否合法

    規則：
    1. name 必須是非空字串
    2. cash_balance、portfolio_value、total_value 必須是數字且 >= 0
    3. portfolio（如果有）必須是 {symbol: 數量}，每個數量都是數字且 >= 0

    不檢查上限。

    參數：
        candidate: 任意 key/value 紀錄

    返回：
        True 如果合法，False 否則
    """
    if not isinstance(candidate, Mapping):
        return False

    name = _get(candidate, "name")
    if not isinstance(name, str) or not name:
        return False

    for field_name in _MONEY_FIELDS:
        if not _is_amount(_get(candidate, field_name)):
            return False

    portfolio = _get(candidate, "portfolio")
    if portfolio is not None:
        if not isinstance(portfolio, Mapping):
            return False
        for symbol, amount in portfolio.items():
            if not isinstance(symbol, str) or not _is_amount(amount):
                return False

    return True


def sanitize(candidate: Mapping[str, Any], clock: Clock = now_ms) -> Optional[PlayerRecord]:
    """
    驗證並正規化玩家資料

    流程：
    1. validate() 失敗 -> 回傳 None
    2. id 預設 ""，avatar 預設 👤
    3. 三個金額欄位四捨五入到兩位小數
    4. portfolio 數量原樣複製（不四捨五入，碎股有意義）
    5. last_update 蓋上目前時間（呼叫者給的時間戳直接丟掉）
    6. 總值與組成不一致時重新計算

    參數：
        candidate: 任意 key/value 紀錄
        clock: 時間來源

    返回：
        PlayerRecord，或 None（驗證失敗）

    注意：
        純函式，不記錄 log；要不要提示修正由呼叫者決定（見 total_was_corrected）
    """
    if not validate(candidate):
        return None

    cash_balance = round_currency(_get(candidate, "cash_balance"))
    portfolio_value = round_currency(_get(candidate, "portfolio_value"))
    total_value = round_currency(_get(candidate, "total_value"))

    if not validate_total_value(portfolio_value, cash_balance, total_value):
        total_value = calculate_total_value(portfolio_value, cash_balance)

    return PlayerRecord(
        id=str(_get(candidate, "id") or ""),
        name=_get(candidate, "name"),
        avatar=str(_get(candidate, "avatar") or DEFAULT_AVATAR),
        portfolio=dict(_get(candidate, "portfolio") or {}),
        cash_balance=cash_balance,
        portfolio_value=portfolio_value,
        total_value=total_value,
        last_update=clock(),
    )


def total_was_corrected(candidate: Mapping[str, Any], record: PlayerRecord) -> bool:
    """sanitize 是否改寫了 candidate 回報的 total_value"""
    return differs(round_currency(_get(candidate, "total_value")), record.total_value)
