"""
交易決策管道

K 線 -> 策略信號 -> 風控倉位計算 -> 持倉執行
"""

__version__ = "0.1.0"
