"""
LLM enrichment for crawled brands.

Includes:
- Provider adapters behind one interface (OpenAI chat, Anthropic messages,
  Ollama generate)
- call_llm: text or JSON completion
- Typed operations validated against a schema: brand voice, token
  normalization, company metadata, snapshot edits, color palette
- Embeddings

Every operation is a single attempt. Transport errors, missing
credentials, unparseable JSON and schema violations raise EnrichmentError;
there is no retry and no fallback to another provider.

Usage:
    from brandsnap.llm import BrandVoiceEnricher

    enricher = BrandVoiceEnricher.from_config(settings.llm)
    voice = await enricher.summarize_brand_voice(crawl.text_content)
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Literal

import anthropic
import openai
import requests
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import LLMConfig
from .errors import EnrichmentError


JSON_OBJECT = {'type': 'json_object'}

BRAND_VOICE_CHARS = 4000
COMPANY_HTML_CHARS = 2000
SUMMARY_CONTENT_CHARS = 1000


# =============================================================================
# JSON parsing
# =============================================================================

@dataclass
class ParseResult:
    """Outcome of turning model output into JSON."""
    ok: bool
    value: Any = None
    reason: str | None = None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "ParseResult":
        return cls(ok=False, reason=reason)


_FIRST_OBJECT = re.compile(r'\{[\s\S]*\}')


def parse_json_strict(text: str) -> ParseResult:
    try:
        return ParseResult.success(json.loads(text))
    except (json.JSONDecodeError, TypeError) as e:
        return ParseResult.failure(f"malformed JSON: {e}")


def strip_code_fences(text: str) -> str:
    """Unwrap a ```json fenced block if the model added one."""
    if '```json' in text:
        return text.split('```json')[1].split('```')[0].strip()
    if '```' in text:
        return text.split('```')[1].split('```')[0].strip()
    return text.strip()


def parse_json_salvage(text: str) -> ParseResult:
    """Direct parse, then the outermost brace-delimited span."""
    direct = parse_json_strict(text)
    if direct.ok:
        return direct
    match = _FIRST_OBJECT.search(text or '')
    if not match:
        return ParseResult.failure("no JSON object in response")
    salvaged = parse_json_strict(match.group(0))
    if not salvaged.ok:
        return ParseResult.failure(f"Failed to parse JSON response: {salvaged.reason}")
    return salvaged


# =============================================================================
# Response schemas
# =============================================================================

def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


class BrandVoiceAnalysis(BaseModel):
    model_config = ConfigDict(extra='allow')

    tone: str
    personality: list[str] = Field(default_factory=list)
    guidelines: Any = None
    themes: list[str] = Field(default_factory=list)

    @field_validator('tone', mode='before')
    @classmethod
    def _join_tone(cls, value):
        if isinstance(value, list):
            return ', '.join(str(v) for v in value)
        return value

    @field_validator('personality', 'themes', mode='before')
    @classmethod
    def _listify(cls, value):
        return _as_list(value)


TokenCategory = Literal['color', 'typography', 'spacing', 'shadow', 'border', 'other']


class NormalizedToken(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_key: str = Field(alias='originalKey')
    normalized_key: str = Field(alias='normalizedKey')
    category: TokenCategory
    value: str
    description: str = ''

    @field_validator('category', mode='before')
    @classmethod
    def _lower(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator('value', mode='before')
    @classmethod
    def _stringify(cls, value):
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator('description', mode='before')
    @classmethod
    def _no_none(cls, value):
        return value or ''


class NormalizedTokenList(BaseModel):
    tokens: list[NormalizedToken] = Field(default_factory=list)


class CompanyMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_name: str | None = Field(default=None, alias='companyName')
    legal_name: str | None = Field(default=None, alias='legalName')
    description: str | None = None
    industry: str | None = None
    metadata: dict = Field(default_factory=dict)

    @field_validator('metadata', mode='before')
    @classmethod
    def _no_none(cls, value):
        return value or {}


class SnapshotPatch(BaseModel):
    """Partial designTokens/brandVoice edit returned for a user command."""
    model_config = ConfigDict(populate_by_name=True)

    design_tokens: dict = Field(default_factory=dict, alias='designTokens')
    brand_voice: dict = Field(default_factory=dict, alias='brandVoice')

    @field_validator('design_tokens', 'brand_voice', mode='before')
    @classmethod
    def _no_none(cls, value):
        return value or {}


class ColorPalette(BaseModel):
    primary: list[str] = Field(default_factory=list)
    secondary: list[str] = Field(default_factory=list)
    accent: list[str] = Field(default_factory=list)
    neutral: list[str] = Field(default_factory=list)
    semantic: dict[str, str | None] = Field(default_factory=dict)

    @field_validator('primary', 'secondary', 'accent', 'neutral', mode='before')
    @classmethod
    def _listify(cls, value):
        return _as_list(value)


# =============================================================================
# Providers
# =============================================================================

class LLMProvider:
    """Common surface of every provider adapter."""

    name = 'base'

    async def complete(self, prompt: str, system_prompt: str = '', json_mode: bool = False) -> str:
        raise NotImplementedError

    async def embed(self, text: str) -> list[float]:
        raise EnrichmentError(self.name, "embeddings are not supported by this provider")

    def parse_json(self, text: str) -> ParseResult:
        return parse_json_strict(text)


class OpenAIChatProvider(LLMProvider):
    """Hosted chat completions with native JSON mode."""

    name = 'openai'

    def __init__(self, config: LLMConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            key = self.config.openai_api_key
            if not key or key == 'your_openai_api_key_here':
                raise EnrichmentError(self.name, "OpenAI API key not configured")
            self._client = openai.AsyncOpenAI(api_key=key, timeout=self.config.timeout)
        return self._client

    async def complete(self, prompt: str, system_prompt: str = '', json_mode: bool = False) -> str:
        client = self._get_client()
        options = {
            'model': self.config.openai_model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': prompt},
            ],
            'temperature': self.config.temperature,
        }
        if json_mode:
            options['response_format'] = JSON_OBJECT

        try:
            response = await client.chat.completions.create(**options)
        except openai.OpenAIError as e:
            raise EnrichmentError(self.name, f"API error: {e}") from e

        content = response.choices[0].message.content
        if content is None:
            raise EnrichmentError(self.name, "empty completion")
        return content

    async def embed(self, text: str) -> list[float]:
        client = self._get_client()
        try:
            response = await client.embeddings.create(model=self.config.embedding_model, input=text)
        except openai.OpenAIError as e:
            raise EnrichmentError(self.name, f"embedding error: {e}") from e
        return list(response.data[0].embedding)


class AnthropicChatProvider(LLMProvider):
    """Hosted messages API; JSON is requested in the prompt and parsed strictly."""

    name = 'anthropic'

    def __init__(self, config: LLMConfig, client: Any = None):
        self.config = config
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.config.anthropic_api_key:
                raise EnrichmentError(self.name, "Anthropic API key not configured")
            self._client = anthropic.AsyncAnthropic(
                api_key=self.config.anthropic_api_key,
                timeout=self.config.timeout,
            )
        return self._client

    async def complete(self, prompt: str, system_prompt: str = '', json_mode: bool = False) -> str:
        client = self._get_client()
        if json_mode:
            prompt = f"{prompt}\n\nRespond with valid JSON only, no markdown or explanation."

        options = {
            'model': self.config.anthropic_model,
            'max_tokens': self.config.max_tokens,
            'temperature': self.config.temperature,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        if system_prompt:
            options['system'] = system_prompt

        try:
            response = await client.messages.create(**options)
        except anthropic.AnthropicError as e:
            raise EnrichmentError(self.name, f"API error: {e}") from e

        if not response.content:
            raise EnrichmentError(self.name, "empty completion")
        return response.content[0].text

    def parse_json(self, text: str) -> ParseResult:
        return parse_json_strict(strip_code_fences(text or ''))


class OllamaProvider(LLMProvider):
    """Local generate/embeddings API."""

    name = 'ollama'

    def __init__(self, config: LLMConfig):
        self.config = config

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.config.ollama_url.rstrip('/')}{path}"
        try:
            resp = requests.post(url, json=payload, timeout=self.config.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise EnrichmentError(self.name, f"Ollama API error: {e}") from e
        except ValueError as e:
            raise EnrichmentError(self.name, f"Ollama returned non-JSON body: {e}") from e

    async def complete(self, prompt: str, system_prompt: str = '', json_mode: bool = False) -> str:
        payload = {
            'model': self.config.ollama_model,
            'prompt': f"{system_prompt}\n\n{prompt}" if system_prompt else prompt,
            'stream': False,
        }
        data = await asyncio.to_thread(self._post, '/api/generate', payload)
        text = data.get('response')
        if text is None:
            raise EnrichmentError(self.name, "response field missing")
        return text

    async def embed(self, text: str) -> list[float]:
        payload = {'model': self.config.ollama_model, 'prompt': text}
        data = await asyncio.to_thread(self._post, '/api/embeddings', payload)
        embedding = data.get('embedding')
        if not isinstance(embedding, list):
            raise EnrichmentError(self.name, "embedding field missing")
        return embedding

    def parse_json(self, text: str) -> ParseResult:
        return parse_json_salvage(text)


def build_provider(config: LLMConfig) -> LLMProvider:
    if config.provider == 'openai':
        return OpenAIChatProvider(config)
    if config.provider == 'anthropic':
        return AnthropicChatProvider(config)
    if config.provider == 'ollama':
        return OllamaProvider(config)
    raise EnrichmentError(config.provider, f"Unknown LLM provider: {config.provider}")


# =============================================================================
# Enricher
# =============================================================================

BRAND_VOICE_SYSTEM = 'You are a brand voice and messaging expert. Analyze website content and extract brand voice characteristics.'
TOKENS_SYSTEM = 'You are a design systems expert. Normalize and categorize design tokens following industry best practices.'
COMPANY_SYSTEM = 'You are an expert at extracting and normalizing company information from web data.'
EDIT_SYSTEM = 'You are a brand manager AI. Interpret natural language instructions and output JSON edits with keys: designTokens, brandVoice.'
SUMMARY_SYSTEM = 'You are a brand strategist creating concise, professional brand summaries.'
COLORS_SYSTEM = 'You are a design systems expert specializing in color theory and design token organization.'


class BrandVoiceEnricher:
    """Provider-agnostic enrichment operations."""

    def __init__(self, provider: LLMProvider):
        self.provider = provider

    @classmethod
    def from_config(cls, config: LLMConfig) -> "BrandVoiceEnricher":
        return cls(build_provider(config))

    async def call_llm(self, prompt: str, system_prompt: str = '', response_format: dict | None = None) -> Any:
        """
        Single completion call.

        Args:
            prompt: User prompt
            system_prompt: System instructions
            response_format: {'type': 'json_object'} to request parsed JSON

        Returns:
            Completion text, or the parsed JSON value in JSON mode
        """
        json_mode = bool(response_format) and response_format.get('type') == 'json_object'
        logger.debug(f"LLM call via {self.provider.name} (json={json_mode})")
        text = await self.provider.complete(prompt, system_prompt, json_mode=json_mode)
        if not json_mode:
            return text

        result = self.provider.parse_json(text)
        if not result.ok:
            raise EnrichmentError(self.provider.name, result.reason)
        return result.value

    async def call_structured(self, prompt: str, system_prompt: str, schema: type[BaseModel]) -> BaseModel:
        data = await self.call_llm(prompt, system_prompt, JSON_OBJECT)
        if not isinstance(data, dict):
            raise EnrichmentError(self.provider.name, f"expected a JSON object, got {type(data).__name__}")
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise EnrichmentError(self.provider.name, f"response does not match {schema.__name__}: {e}") from e

    async def summarize_brand_voice(self, content: str) -> dict:
        prompt = f"""Analyze the following website content and provide a comprehensive brand voice analysis. Include:
1. Tone (e.g., professional, friendly, casual, authoritative)
2. Personality traits
3. Voice guidelines and characteristics
4. Key messaging themes

Website content:
{(content or '')[:BRAND_VOICE_CHARS]}

Provide the analysis in JSON format with keys: tone, personality, guidelines, themes"""
        analysis = await self.call_structured(prompt, BRAND_VOICE_SYSTEM, BrandVoiceAnalysis)
        return analysis.model_dump()

    async def normalize_design_tokens(self, tokens: list[dict]) -> list[dict]:
        prompt = f"""Analyze and normalize the following design tokens. Categorize them properly and provide standardized names.

Tokens:
{json.dumps(tokens, indent=2)}

Return a JSON object with a "tokens" array, each item with structure:
{{
  "originalKey": "string",
  "normalizedKey": "string",
  "category": "color|typography|spacing|shadow|border|other",
  "value": "string",
  "description": "string"
}}"""
        result = await self.call_structured(prompt, TOKENS_SYSTEM, NormalizedTokenList)
        return [token.model_dump(by_alias=True) for token in result.tokens]

    async def extract_company_metadata(self, html: str, extracted_data: dict) -> dict:
        prompt = f"""Extract and normalize company information from the following data:

HTML snippets: {(html or '')[:COMPANY_HTML_CHARS]}

Extracted data: {json.dumps(extracted_data, default=str)}

Provide canonical company metadata in JSON format:
{{
  "companyName": "official company name",
  "legalName": "legal business name if different",
  "description": "brief company description",
  "industry": "primary industry",
  "metadata": {{
    "founded": "year if available",
    "headquarters": "location if available"
  }}
}}"""
        result = await self.call_structured(prompt, COMPANY_SYSTEM, CompanyMetadata)
        return result.model_dump(by_alias=True)

    async def generate_embedding(self, text: str) -> list[float]:
        return await self.provider.embed(text)

    async def interpret_edit(self, design_tokens: dict, brand_voice: dict, command: str) -> SnapshotPatch:
        """Turn a natural-language edit into a partial designTokens/brandVoice patch."""
        current = json.dumps({'designTokens': design_tokens, 'brandVoice': brand_voice}, indent=2, default=str)
        prompt = f"""Given the current brand snapshot:
{current}

Apply the following changes:
"{command}"

Return only the changed keys of designTokens and brandVoice in JSON format: {{"designTokens": {{...}}, "brandVoice": {{...}}}}"""
        return await self.call_structured(prompt, EDIT_SYSTEM, SnapshotPatch)

    async def generate_brand_summary(self, site_data: dict) -> str:
        company = (site_data.get('companyInfo') or {}).get('companyName') or 'Unknown'
        prompt = f"""Create a concise brand summary based on the following information:

Title: {site_data.get('title') or ''}
Description: {site_data.get('description') or ''}
Company: {company}
Content sample: {(site_data.get('content') or '')[:SUMMARY_CONTENT_CHARS]}

Provide a 2-3 sentence professional brand summary."""
        response = await self.call_llm(prompt, SUMMARY_SYSTEM)
        return response.strip()

    async def analyze_colors(self, colors: list[str]) -> dict:
        prompt = f"""Analyze the following colors and categorize them as primary, secondary, accent, neutral, or semantic colors:

Colors: {json.dumps(colors)}

Return JSON with categorized colors:
{{
  "primary": ["color values"],
  "secondary": ["color values"],
  "accent": ["color values"],
  "neutral": ["color values"],
  "semantic": {{
    "success": "value",
    "warning": "value",
    "error": "value",
    "info": "value"
  }}
}}"""
        result = await self.call_structured(prompt, COLORS_SYSTEM, ColorPalette)
        return result.model_dump()
