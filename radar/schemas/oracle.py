"""神谕接口的请求/响应模型"""

from pydantic import BaseModel, Field


class OracleRequest(BaseModel):
    question: str = Field(default="", max_length=4000)
    url_atual: str | None = Field(default=None, max_length=500)
    manual_context: str | None = Field(default=None, max_length=4000)
    language: str = Field(default="pt-BR", max_length=10)
    # 仅管理员可用：以 dev / whitelabel 等身份提问
    perfil: str | None = None


class OracleLink(BaseModel):
    label: str = ""
    url: str = ""


class OracleAnswerResponse(BaseModel):
    modo: str
    risco: str
    titulo_curto: str
    resposta_principal: str
    passos: list[str]
    links_sugeridos: list[OracleLink]
    mensagem_final_seguranca: str | None = None


class OracleMeta(BaseModel):
    latency_ms: int
    tokens_input: int
    tokens_output: int
    model: str
    provider: str


class OracleResponse(BaseModel):
    response: OracleAnswerResponse
    meta: OracleMeta
