"""
估值服務：金額四捨五入與持倉價值計算

純計算邏輯，Validator、RoomLedger、DeviceReconciler 共用
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

from core.constants import MONEY_TOLERANCE

_CENT = Decimal("0.01")


def round_currency(value: float) -> float:
    """
    把金額四捨五入到小數點後兩位

    使用 Decimal 的 ROUND_HALF_UP，而不是內建 round()（銀行家捨入）：
        round_currency(0.125) -> 0.13
        round_currency(2.675) -> 2.68

    參數：
        value: 金額

    返回：
        兩位小數的 float
    """
    return float(Decimal(repr(float(value))).quantize(_CENT, rounding=ROUND_HALF_UP))


def calculate_portfolio_value(portfolio: Mapping[str, float], prices: Mapping[str, float]) -> float:
    """
    計算持倉價值：Σ 數量 × 單價

    規則：
    - 價格表沒有的幣種，單價視為 0
    - 結果四捨五入到兩位小數

    範例：
        calculate_portfolio_value({"BTC": 2}, {"BTC": 100}) -> 200.0
        calculate_portfolio_value({"DOGE": 5}, {}) -> 0.0
    """
    value = sum(prices.get(symbol, 0) * amount for symbol, amount in portfolio.items())
    return round_currency(value)


def calculate_total_value(portfolio_value: float, cash_balance: float) -> float:
    """總值 = 持倉價值 + 現金（兩位小數）"""
    return round_currency(portfolio_value + cash_balance)


def validate_total_value(portfolio_value: float, cash_balance: float, total_value: float) -> bool:
    """
    檢查總值是否與其組成一致

    返回：
        True 如果 |round(portfolio_value + cash_balance) - total_value| <= MONEY_TOLERANCE
    """
    return not differs(calculate_total_value(portfolio_value, cash_balance), total_value)


def differs(a: float, b: float, tolerance: float = MONEY_TOLERANCE) -> bool:
    """
    兩個數值的差距是否超過容忍值

    用 Decimal 比較，差距剛好等於容忍值時不論金額大小都不算超過：
        differs(100.00, 100.01) -> False
        differs(300.00, 300.01) -> False
        differs(300.00, 300.02) -> True
    """
    return abs(_decimal(a) - _decimal(b)) > _decimal(tolerance)


def _decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))
