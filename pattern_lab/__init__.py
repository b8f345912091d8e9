"""
pattern-lab — デザインパターン学習用サービス

Transactional Outbox / CQRS / Observer / Strategy を
ひとつの FastAPI アプリケーションに載せて動かす。
"""
