"""
API 層

這個 package 只負責 HTTP 和核心之間的轉換：
- rooms：房間生命週期、價格更新、排行榜
- players：玩家更新與查詢
- devices：裝置快照、衝突、一致性檢查
- sync：同步事件、指標、報告
"""
