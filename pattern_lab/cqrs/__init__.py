"""
CQRS パターン

Write 側 (コマンド) がイベントストアに追記し、
投影ループが Read 側のリードモデルを更新する。
"""
