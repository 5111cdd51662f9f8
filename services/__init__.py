"""
服務層

這個 package 包含純計算邏輯，不保存狀態：
- validator：玩家資料驗證與正規化
- valuation_service：金額四捨五入與持倉估值
- conflict_service：快照指紋、差異與 last-write-wins
- health_service：同步健康度判斷
- naming_service：房間代碼、裝置與事件 ID
- report_service：同步報告
"""
