"""Synthesis of error reports from application logs."""

import json

from langchain_core.messages import HumanMessage, SystemMessage

from clark.models.data_parts import ReportErrorsData
from clark.services.model_adapter import ModelAdapter
from clark.utils.logging import get_logger

logger = get_logger(__name__)

ERRORS_PROMPT = """You receive log lines from a web application running in a sandbox.

Decide whether they show errors in the application's own code, such as build
failures, type errors, failed imports or uncaught exceptions. Ignore warnings,
deprecation notices and failures that a code change cannot fix.

Reply with:
- summary: a short description of the errors, quoting the key messages verbatim
- paths: the project files the errors point to, relative to the project root

If the logs show no errors in the code, use an empty summary and no paths."""


class ErrorReporter:
    """Turns raw log lines into a ``report-errors`` payload using the default model."""

    def __init__(self, model_adapter: ModelAdapter):
        self.model_adapter = model_adapter

    async def report(self, lines: list[str]) -> ReportErrorsData:
        model = self.model_adapter.resolve().handle.with_structured_output(ReportErrorsData)
        logger.info(f"Synthesizing error report from {len(lines)} log lines")

        report = await model.ainvoke(
            [SystemMessage(content=ERRORS_PROMPT), HumanMessage(content=json.dumps({"lines": lines}))]
        )
        if isinstance(report, dict):
            report = ReportErrorsData.model_validate(report)
        return report
