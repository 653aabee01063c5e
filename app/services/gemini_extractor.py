"""
Gemini Extractor Module for confirmation emails.

Uses LangChain + Gemini to pull the employer name out of a job application
confirmation. The model is asked for strict JSON; the reply is parsed
defensively and any failure degrades to ``company = None``.
"""

import json
import re
from typing import Any, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel, Field

from app.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class CompanyExtraction(BaseModel):
    """Structured result of an extraction call."""
    company: Optional[str] = Field(None, description="Employer the candidate applied to")


EXTRACTION_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You extract the EMPLOYER NAME that the applicant applied to from a job application confirmation email.

Use these signals in priority order:
1) SUBJECT - often "Thank you for applying to <Company>".
2) BODY - may say "Thank you for applying to <Company>".
3) FROM - may be an applicant tracking system (Greenhouse, Lever, Workday, ...) or the employer's own domain.

Rules:
- Return the employer, NOT the applicant tracking system or job platform (return "Bubble", not "Greenhouse").
- If the SUBJECT clearly contains "applying to <Company>", prefer that exact company.
- Normalize to a clean brand name: Title Case words, drop legal suffixes (Inc, LLC, Ltd, GmbH, Co., PLC, S.A., Pte. Ltd.).
- Keep meaningful parentheticals, e.g. "Amazon Web Services (AWS)".
- If you are unsure or the employer is not stated, return null. Do NOT guess.

Return JSON ONLY in this exact schema:
{{"company": "Acme"}}  or  {{"company": null}}

Examples:
- SUBJECT: "Thank you for applying to AppLovin" -> "AppLovin"
- SUBJECT: "Thank You for Applying to Mesh!" -> "Mesh"
- SUBJECT: "Your application has been received" + BODY: "...applying to Stripe..." -> "Stripe"
- SUBJECT: "We received your application" + BODY: "...to Goldman Sachs" -> "Goldman Sachs"
- SUBJECT: "Job alerts for you" -> null"""),
    ("human", """SUBJECT: {subject}
FROM: {sender}
BODY: {body}""")
])

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def _get_llm(api_key: Optional[str], model: str) -> ChatGoogleGenerativeAI:
    """Get configured Gemini LLM instance."""
    return ChatGoogleGenerativeAI(
        model=model,
        google_api_key=api_key,
        temperature=0,
        max_output_tokens=256,
    )


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence (``` or ```json) wrapped around a reply."""
    text = (text or "").strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def parse_company_response(text: str) -> CompanyExtraction:
    """
    Parse the model reply into a CompanyExtraction.

    Args:
        text: Raw model output, possibly fenced

    Returns:
        CompanyExtraction; company is None for anything but a usable name
    """
    cleaned = strip_code_fences(text)
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.error(f"❌ Gemini response not valid JSON: {cleaned[:200]}")
        return CompanyExtraction(company=None)

    if not isinstance(data, dict):
        logger.error(f"❌ Gemini response is not a JSON object: {cleaned[:200]}")
        return CompanyExtraction(company=None)

    company = data.get("company")
    if not isinstance(company, str):
        return CompanyExtraction(company=None)

    company = company.strip()
    if not company or company.lower() in ("null", "none", "unknown"):
        return CompanyExtraction(company=None)

    return CompanyExtraction(company=company)


class GeminiCompanyExtractor:
    """
    Extracts the employer name from confirmation emails with Gemini.

    Pass ``llm`` to use any LangChain chat model instead of Gemini.
    """

    def __init__(
        self,
        llm: Optional[Runnable] = None,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
    ):
        self._llm = llm
        self._api_key = api_key
        self._model = model
        self._chain: Optional[Runnable] = None

    def _get_chain(self) -> Runnable:
        # Built lazily so a missing API key surfaces as a failed call
        if self._chain is None:
            llm = self._llm or _get_llm(self._api_key, self._model)
            self._chain = EXTRACTION_PROMPT | llm | StrOutputParser()
        return self._chain

    async def extract_company(
        self,
        body: Optional[str],
        subject: Optional[str],
        sender: Optional[str],
    ) -> CompanyExtraction:
        """
        Extract the employer from one email.

        Args:
            body: Email snippet or body excerpt
            subject: Email subject line
            sender: From header

        Returns:
            CompanyExtraction (company None when unknown or on any failure)
        """
        try:
            reply = await self._get_chain().ainvoke({
                "subject": subject or "",
                "sender": sender or "",
                "body": body or "",
            })
        except Exception as e:
            logger.error(f"❌ Gemini extraction failed: {e}")
            return CompanyExtraction(company=None)

        return parse_company_response(reply)
