"""行情数据模块（market_data）。

核心不做任何网络 I/O：实时 K 线由外部 `MarketDataProvider` 提供，
这里只负责把 Bar 序列/历史 CSV 整形成分类器使用的 DataFrame。
"""

from market_data.loader import as_bar_frame, bars_to_frame, last_closed_open_time, load_bars_csv

__all__ = [
    "as_bar_frame",
    "bars_to_frame",
    "last_closed_open_time",
    "load_bars_csv",
]
