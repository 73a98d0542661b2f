"""
数据模式层 (Schemas)

使用 Pydantic 定义 API 的请求和响应模型，按业务拆分在各子模块中：
tenant / user / journal / chat / risk / plan / billing / oracle /
notification / content / ai / ai_flow / audit
"""
