"""Strategy パターン — 決済方法を実行時に切り替える"""
