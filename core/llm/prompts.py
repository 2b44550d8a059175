from typing import List, Optional

from config.models import DEFAULT_MODEL_ID
from core.contracts.models import ModelInfo
from core.contracts.provider import Message

MODEL_SYSTEM_PROMPT = """You are an assistant that reformats raw, messy engineering meeting or troubleshooting notes into clean, concise, well-structured GitHub issue/comment ready Markdown.

Guidelines:
1. Preserve ALL technical details (commands, error messages, versions, URLs, code, logs).
2. Organize using clear sections: Summary, Context, Steps Performed, Findings / Observations, Root Cause (if known), Next Actions, References.
3. Convert ad-hoc bullets into consistent markdown lists.
4. Use fenced code blocks for multiline commands or logs; specify language when obvious (bash, json, diff, ts).
5. Never fabricate information; if something is ambiguous, note it under an 'Open Questions' section.
6. Keep line width reasonable (< 100 chars) and remove trailing spaces.
7. Do not add decorative emojis or marketing tone.
8. If content already looks structured, lightly improve without drastic restructuring.

Return ONLY the Markdown body; no surrounding commentary."""

# Fallback when the public catalog cannot be fetched.
AVAILABLE_MODELS: List[ModelInfo] = [
    ModelInfo(id=DEFAULT_MODEL_ID, label="OpenAI GPT-4.1"),
    ModelInfo(id="openai/gpt-4o-mini", label="OpenAI GPT-4o Mini"),
    ModelInfo(id="meta-llama/llama-3.1-70b-instruct", label="LLaMA 3.1 70B Instruct"),
    ModelInfo(id="meta-llama/llama-3.1-8b-instruct", label="LLaMA 3.1 8B Instruct"),
    ModelInfo(id="mistral/mistral-large", label="Mistral Large"),
]


def build_messages(content: str, system_prompt: Optional[str] = None) -> List[Message]:
    return [
        {"role": "system", "content": system_prompt or MODEL_SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]
