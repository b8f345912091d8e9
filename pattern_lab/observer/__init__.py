"""Observer パターン — ニュースエージェンシーと購読者"""
