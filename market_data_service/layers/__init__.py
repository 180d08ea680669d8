"""
数据流分层架构
  Layer 1 – Acquisition  : 上游行情源（CoinGecko / Alpha Vantage）
  Layer 2 – Cache        : Redis / 进程内内存缓存
  Layer 3 – Aggregation  : 价格链、搜索、热门资产
  符号解析（symbols）    : 代码 → CoinGecko id
"""
