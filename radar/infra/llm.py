"""
LLM 客户端模块

支持多种 LLM 提供商：
- OpenAI / Groq / DeepSeek / OpenRouter（OpenAI 兼容协议，AsyncOpenAI 客户端）
- Ollama（本地模型，/api/chat）
- Gemini（Google generateContent）

所有调用统一返回 LLMResult（内容 + token 用量），
由 services/ai_router.py 负责选择提供商和降级。

使用示例：
    from radar.infra.llm import chat_completion_with_config

    config = settings.get_provider_config("openai", "gpt-4o-mini")
    result = await chat_completion_with_config(
        messages=[{"role": "user", "content": "Olá"}],
        provider_config=config,
    )
    print(result.content, result.tokens_input, result.tokens_output)
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
from openai import AsyncOpenAI

from radar.config import OPENAI_COMPATIBLE_PROVIDERS, get_settings
from radar.exceptions import LLMError

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    """一次 LLM 调用的结果"""
    content: str
    provider: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0

    @property
    def tokens_total(self) -> int:
        return self.tokens_input + self.tokens_output


@lru_cache(maxsize=8)
def _get_openai_compatible_client(api_key: str | None, base_url: str | None) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端（按 key + base_url 缓存）"""
    settings = get_settings()
    return AsyncOpenAI(
        api_key=api_key or "dummy",
        base_url=base_url,
        timeout=settings.llm_timeout_seconds,
    )


async def chat_completion_with_config(
    messages: list[dict[str, str]],
    provider_config: dict[str, Any],
    temperature: float | None = None,
    max_tokens: int | None = None,
    json_mode: bool = False,
) -> LLMResult:
    """
    使用指定配置调用 LLM 进行对话补全

    Args:
        messages: OpenAI 格式的消息列表（system/user/assistant）
        provider_config: 提供商配置，包含 provider, model, api_key, base_url
        temperature: 温度参数（0-2），默认取配置
        max_tokens: 最大生成 token 数，默认取配置
        json_mode: 要求模型输出 JSON 对象

    Returns:
        LLMResult

    Raises:
        LLMError: 提供商未配置或调用失败
    """
    provider = provider_config.get("provider")

    settings = get_settings()
    if temperature is None:
        temperature = settings.llm_temperature
    if max_tokens is None:
        max_tokens = settings.llm_max_tokens

    try:
        if provider == "ollama":
            return await _ollama_chat(messages, provider_config, temperature, max_tokens, json_mode)

        elif provider == "gemini":
            if not provider_config.get("api_key"):
                raise LLMError("GEMINI_API_KEY 未配置", code="PROVIDER_NOT_CONFIGURED")
            return await _gemini_chat(messages, provider_config, temperature, max_tokens, json_mode)

        elif provider in OPENAI_COMPATIBLE_PROVIDERS:
            if not provider_config.get("api_key"):
                raise LLMError(f"{provider.upper()}_API_KEY 未配置", code="PROVIDER_NOT_CONFIGURED")
            return await _openai_compatible_chat(
                messages, provider_config, temperature, max_tokens, json_mode
            )

        else:
            raise LLMError(f"未知的 LLM 提供者: {provider}", code="UNKNOWN_PROVIDER")

    except LLMError:
        raise
    except Exception as e:
        logger.error(f"LLM 调用失败 ({provider}): {e}")
        raise LLMError(f"{provider} 调用失败: {e}") from e


async def _openai_compatible_chat(
    messages: list[dict[str, str]],
    config: dict[str, Any],
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> LLMResult:
    """OpenAI 兼容 API Chat"""
    client = _get_openai_compatible_client(config.get("api_key"), config.get("base_url"))

    kwargs: dict[str, Any] = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    response = await client.chat.completions.create(
        model=config["model"],
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        **kwargs,
    )
    usage = response.usage
    return LLMResult(
        content=response.choices[0].message.content or "",
        provider=config["provider"],
        model=response.model or config["model"],
        tokens_input=usage.prompt_tokens if usage else 0,
        tokens_output=usage.completion_tokens if usage else 0,
    )


async def _ollama_chat(
    messages: list[dict[str, str]],
    config: dict[str, Any],
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> LLMResult:
    """Ollama Chat API"""
    url = f"{config['base_url']}/api/chat"
    payload: dict[str, Any] = {
        "model": config["model"],
        "messages": messages,
        "stream": False,
        "options": {
            "temperature": temperature,
            "num_predict": max_tokens,
        },
    }
    if json_mode:
        payload["format"] = "json"

    async with httpx.AsyncClient(timeout=get_settings().llm_timeout_seconds) as client:
        response = await client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()

    return LLMResult(
        content=data["message"]["content"],
        provider="ollama",
        model=config["model"],
        tokens_input=data.get("prompt_eval_count", 0),
        tokens_output=data.get("eval_count", 0),
    )


async def _gemini_chat(
    messages: list[dict[str, str]],
    config: dict[str, Any],
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> LLMResult:
    """Gemini API Chat"""
    url = f"{config['base_url']}/models/{config['model']}:generateContent"

    # Gemini 没有 system 角色，用 systemInstruction 传递；assistant 对应 model
    system_parts = [{"text": m["content"]} for m in messages if m["role"] == "system"]
    contents = [
        {
            "role": "model" if m["role"] == "assistant" else "user",
            "parts": [{"text": m["content"]}],
        }
        for m in messages
        if m["role"] != "system"
    ]

    generation_config: dict[str, Any] = {
        "temperature": temperature,
        "maxOutputTokens": max_tokens,
    }
    if json_mode:
        generation_config["responseMimeType"] = "application/json"

    payload: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}

    async with httpx.AsyncClient(timeout=get_settings().llm_timeout_seconds) as client:
        response = await client.post(url, params={"key": config["api_key"]}, json=payload)
        response.raise_for_status()
        result = response.json()

    usage = result.get("usageMetadata") or {}
    return LLMResult(
        content=result["candidates"][0]["content"]["parts"][0]["text"],
        provider="gemini",
        model=config["model"],
        tokens_input=usage.get("promptTokenCount", 0),
        tokens_output=usage.get("candidatesTokenCount", 0),
    )
