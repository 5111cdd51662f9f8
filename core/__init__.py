"""
核心同步引擎

這個 package 包含所有有狀態的元件：
- RoomLedger / RoomRegistry：每個房間的權威帳本
- DeviceReconciler：裝置快照比對與衝突記錄
- SyncMonitor：有上限的事件紀錄與健康指標
- SyncCoordinator：把同一筆更新推給 Ledger 和 Reconciler
- Locks：並發控制工具
"""
