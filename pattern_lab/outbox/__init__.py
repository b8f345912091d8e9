"""
Transactional Outbox パターン

注文の状態変更とイベントの記録を同じトランザクションで行い、
別のポーリングタスクがイベントを外部へ送信する。
"""
