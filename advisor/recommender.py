import json
import logging
import re
from typing import Literal, Optional

from groq import Groq
from pydantic import BaseModel

from faculty_credits import config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You help college administrators decide how many credit points a faculty
member's "good work" submission deserves.

Weigh the effort, impact and importance of the work described. Use the previous
allocations, when given, to stay consistent with past decisions.

Respond with a JSON object of this shape:
{
    "recommendedCredit": integer,
    "reasoning": "one or two sentences explaining the value"
}

Return ONLY valid JSON, no explanations."""

# (keyword, points, label); first match wins
HEURISTICS = [
    ("patent", 20, "patent filed or granted"),
    ("phd", 15, "doctoral work"),
    ("grant", 15, "funded research grant"),
    ("journal", 10, "journal publication"),
    ("publication", 10, "publication"),
    ("paper", 8, "paper presentation or publication"),
    ("conference", 6, "conference participation"),
    ("book", 12, "book or book chapter"),
    ("award", 8, "award or recognition"),
    ("workshop", 4, "workshop organised or attended"),
    ("seminar", 3, "seminar"),
    ("certification", 3, "certification course"),
    ("mentor", 3, "student mentoring"),
]
DEFAULT_POINTS = 2


class CreditRecommendation(BaseModel):
    recommended_credit: int
    reasoning: str
    source: Literal["llm", "heuristic"]


class CreditRecommender:
    """Advisory point suggestions. Never writes to the ledger."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or config.GROQ_API_KEY
        self.client = None
        self.model = model or config.GROQ_MODEL

        if self.api_key:
            self.client = Groq(api_key=self.api_key)

    @property
    def is_available(self) -> bool:
        return self.client is not None

    def recommend(
        self,
        submission_text: str,
        supporting_document_description: Optional[str] = None,
        previous_allocations: Optional[str] = None,
    ) -> CreditRecommendation:
        if self.client:
            result = self._recommend_with_groq(
                submission_text, supporting_document_description, previous_allocations
            )
            if result:
                return result
        return self._recommend_locally(submission_text, supporting_document_description)

    def _recommend_with_groq(self, text, document, previous) -> Optional[CreditRecommendation]:
        prompt = f"Submission:\n{text}\n"
        if document:
            prompt += f"\nSupporting documentation:\n{document}\n"
        if previous:
            prompt += f"\nPrevious allocations:\n{previous}\n"
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.1,
                max_tokens=512
            )
        except Exception:
            logger.exception("Groq recommendation failed, using heuristic")
            return None

        data = self._extract_json(response.choices[0].message.content)
        try:
            return CreditRecommendation(
                recommended_credit=int(data["recommendedCredit"]),
                reasoning=str(data.get("reasoning", "")),
                source="llm",
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Unusable recommendation payload from Groq: %r", data)
            return None

    def _extract_json(self, text: str) -> dict:
        json_match = re.search(r'\{[\s\S]*\}', text or "")
        if json_match:
            try:
                return json.loads(json_match.group())
            except json.JSONDecodeError:
                pass
        return {}

    def _recommend_locally(self, text: str, document: Optional[str]) -> CreditRecommendation:
        text_lower = f"{text} {document or ''}".lower()

        for keyword, points, label in HEURISTICS:
            if keyword in text_lower:
                reasoning = f"Looks like {label}; similar work is usually worth {points} points."
                break
        else:
            points = DEFAULT_POINTS
            reasoning = "No recognised activity type; suggesting the minimum credit."

        if re.search(r'\b(international|national)\b', text_lower):
            points += 2
            reasoning += " Raised by 2 for national or international scope."

        return CreditRecommendation(recommended_credit=points, reasoning=reasoning, source="heuristic")
