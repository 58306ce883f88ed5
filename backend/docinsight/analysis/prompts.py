"""Analysis prompt template."""

from __future__ import annotations

from typing import Final

_ANALYSIS_TEMPLATE: Final[str] = """\
Please analyze the following document and provide a comprehensive analysis in JSON format:

Document: {file_name}
Content: {content}

Please provide the analysis in the following JSON structure:
{{
  "summary": {{
    "short": "One sentence summary",
    "medium": "2-3 sentence summary",
    "detailed": "Full paragraph summary"
  }},
  "sentiment": {{
    "score": 0.5,
    "label": "neutral",
    "confidence": 0.8
  }},
  "keywords": ["keyword1", "keyword2", "keyword3"],
  "topics": ["topic1", "topic2"],
  "entities": [
    {{"name": "Entity Name", "type": "PERSON|ORGANIZATION|LOCATION|MISC", "confidence": 0.9}}
  ],
  "complexity": "simple|moderate|complex",
  "language": "en"
}}

Guidelines:
- sentiment.score should be between -1 (negative) and 1 (positive)
- sentiment.label should be "positive", "negative", or "neutral"
- Extract 5-10 most important keywords
- Identify 2-5 main topics/themes
- Find named entities (people, organizations, locations)
- Assess complexity based on vocabulary and sentence structure
- Detect the primary language
"""


def build_analysis_prompt(text: str, file_name_hint: str | None, max_chars: int = 4000) -> str:
    content = text[:max_chars]
    if len(text) > max_chars:
        content += "..."
    return _ANALYSIS_TEMPLATE.format(file_name=file_name_hint or "Unknown", content=content)
