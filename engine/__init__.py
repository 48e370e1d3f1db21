"""执行引擎层（engine）。

- `InstrumentScheduler`：单品种按 K 线收盘调度；
- `TradingBot`：多品种宿主 + 冷却观察；
- `replay_signals`：离线逐根回放。

命令行入口由仓库根目录 `main.py` 统一承载。
"""
