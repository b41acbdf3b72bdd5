"""对外 API 层。"""
