"""構造化並行処理 — スコープ内で起動したサブタスクはスコープ内で完了させる"""
