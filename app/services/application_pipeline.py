"""
LangGraph pipeline run for every new inbox message.

1. Classify → Is this an application confirmation? (stop if not)
2. Extract Company → Gemini, "Unknown Company" on any failure
3. Record → Idempotent insert into Notion
"""

import asyncio
from typing import Optional, TypedDict

from langgraph.graph import StateGraph, START, END

from app.logging_config import get_logger
from app.models.application_record import ApplicationRecord, EmailMessage, UNKNOWN_COMPANY
from app.services.confirmation_classifier import is_confirmation
from app.services.gemini_extractor import GeminiCompanyExtractor
from app.services.notion_sink import NotionSink, SinkResult

logger = get_logger(__name__)


class MessageState(TypedDict, total=False):
    """State that flows through the pipeline for one message."""
    message: EmailMessage
    is_confirmation: bool
    company: str
    record: Optional[ApplicationRecord]
    status: str  # skipped, added, duplicate, failed
    error_message: Optional[str]


class ApplicationPipeline:
    """Classify → extract → record, compiled once and reused for every message."""

    def __init__(
        self,
        extractor: GeminiCompanyExtractor,
        sink: NotionSink,
        extraction_timeout: float = 30.0,
    ):
        self._extractor = extractor
        self._sink = sink
        self._extraction_timeout = extraction_timeout
        self._graph = self._build()

    # ============ NODE FUNCTIONS ============

    async def classify_node(self, state: MessageState) -> dict:
        """Node 1: Heuristic confirmation check on subject + snippet."""
        message = state["message"]
        confirmed = is_confirmation(message.subject, message.snippet)
        if not confirmed:
            return {"is_confirmation": False, "status": "skipped"}
        return {"is_confirmation": True}

    async def extract_company_node(self, state: MessageState) -> dict:
        """Node 2: Gemini extraction with a placeholder fallback."""
        message = state["message"]
        company = None
        try:
            extraction = await asyncio.wait_for(
                self._extractor.extract_company(message.snippet, message.subject, message.sender),
                timeout=self._extraction_timeout,
            )
            company = extraction.company
        except Exception as e:
            logger.error(f"❌ Gemini failed for {message.message_id}, using default company: {e!r}")

        return {"company": company or UNKNOWN_COMPANY}

    async def record_node(self, state: MessageState) -> dict:
        """Node 3: Insert into Notion unless already tracked."""
        record = ApplicationRecord.from_message(state["message"], state.get("company"))
        result = await self._sink.add_record(record)

        update = {"record": record, "status": result.value}
        if result is SinkResult.FAILED:
            update["error_message"] = f"Sink insert failed for {record.gmail_message_id}"
        return update

    @staticmethod
    def route_after_classify(state: MessageState) -> str:
        return "extract_company" if state.get("is_confirmation") else END

    # ============ BUILD PIPELINE ============

    def _build(self):
        workflow = StateGraph(MessageState)

        workflow.add_node("classify", self.classify_node)
        workflow.add_node("extract_company", self.extract_company_node)
        workflow.add_node("record", self.record_node)

        workflow.add_edge(START, "classify")
        workflow.add_conditional_edges(
            "classify",
            self.route_after_classify,
            {"extract_company": "extract_company", END: END},
        )
        workflow.add_edge("extract_company", "record")
        workflow.add_edge("record", END)

        return workflow.compile()

    async def process(self, message: EmailMessage) -> MessageState:
        """
        Run the pipeline for one message.

        Returns:
            Final MessageState; ``status`` tells what happened
        """
        initial_state: MessageState = {
            "message": message,
            "is_confirmation": False,
            "status": "pending",
            "error_message": None,
        }
        return await self._graph.ainvoke(initial_state)
