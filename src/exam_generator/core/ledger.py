"""
Cost and usage ledger.

Token usage reported by the generation service is priced against a static
per-model table (USD per 1M tokens) and appended to a daily JSONL file.
Recording is best-effort: a ledger failure is logged and swallowed, never
raised into the generation unit it describes.
"""
import json
import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from exam_generator import config
from exam_generator.models.run_models import CostBreakdown, TokenUsage, UsageRecord

logger = logging.getLogger(__name__)

PRICING_MODES = ("standard", "batch", "knowledge_based")
CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$"}


def calculate_cost(
    usage: TokenUsage,
    model: str,
    pricing_mode: str = "standard",
    pricing: Optional[Dict[str, Dict[str, Any]]] = None,
    rate: float = config.USD_TO_LOCAL_RATE,
) -> CostBreakdown:
    """
    Price one call's token usage.

    Unknown models are priced as ``config.DEFAULT_PRICING_MODEL``.
    ``knowledge_based`` calls are priced at the standard rate.

    Raises:
        ValueError: If the pricing mode is not recognised.
    """
    if pricing_mode not in PRICING_MODES:
        raise ValueError(f"Unknown pricing mode {pricing_mode!r}")
    table = config.MODEL_PRICING if pricing is None else pricing
    prices = table.get(model)
    if prices is None:
        logger.warning("Unknown model %s, using %s pricing", model, config.DEFAULT_PRICING_MODEL)
        prices = table[config.DEFAULT_PRICING_MODEL]
    mode = "standard" if pricing_mode == "knowledge_based" else pricing_mode

    input_cost = usage.prompt_tokens / 1_000_000 * prices["input"][mode]
    output_cost = usage.completion_tokens / 1_000_000 * prices["output"][mode]
    cache_cost = usage.cached_tokens / 1_000_000 * prices["context_cache"]
    total = input_cost + output_cost + cache_cost
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        cache_cost=cache_cost,
        total=total,
        local_currency_total=total * rate,
        local_currency=config.LOCAL_CURRENCY,
    )


def format_local_cost(amount: float, currency: str = config.LOCAL_CURRENCY) -> str:
    """Render a local-currency amount, with more precision for small amounts."""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    if amount < 1:
        return f"{symbol}{amount:.4f}"
    if amount < 100:
        return f"{symbol}{amount:.2f}"
    return f"{symbol}{round(amount):,}"


class UsageLedger:
    """Append-only usage log: in memory for the process, JSONL on disk per day."""

    def __init__(
        self,
        log_dir: Optional[str] = config.USAGE_LOG_DIR,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Args:
            log_dir: Directory for daily ``<date>_USAGE.jsonl`` files; None keeps records in memory only.
            clock: Source of record timestamps.
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.clock = clock
        self.records: List[UsageRecord] = []

    def _daily_path(self, day: date) -> Path:
        return self.log_dir / f"{day.isoformat()}_USAGE.jsonl"

    def record(
        self,
        usage: TokenUsage,
        model: str,
        pricing_mode: str = "standard",
        operation: str = "question_generation",
        unit_id: Optional[str] = None,
        run_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UsageRecord]:
        """
        Price and log one call. Never raises.

        Returns:
            The stored record, or None if recording failed.
        """
        try:
            entry = UsageRecord(
                timestamp=self.clock(),
                operation=operation,
                unit_id=unit_id,
                run_id=run_id,
                model=model,
                pricing_mode=pricing_mode,
                usage=usage,
                cost=calculate_cost(usage, model, pricing_mode),
                metadata=metadata or {},
            )
            self.records.append(entry)
            if self.log_dir is not None:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(self._daily_path(entry.timestamp.date()), "a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json() + "\n")
        except Exception as e:
            logger.warning("Failed to record token usage for unit %s: %s", unit_id, e)
            return None

        logger.info(
            "Token usage: %d prompt + %d completion on %s = $%.6f (%s)",
            usage.prompt_tokens, usage.completion_tokens, model,
            entry.cost.total, format_local_cost(entry.cost.local_currency_total),
            extra={"unit_id": unit_id})
        return entry

    def load(self, day: Optional[date] = None) -> List[UsageRecord]:
        """Records written to disk for ``day`` (default: today)."""
        if self.log_dir is None:
            return []
        path = self._daily_path(day or self.clock().date())
        if not path.exists():
            return []
        records = []
        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(UsageRecord.model_validate_json(line))
                except ValueError as e:
                    logger.warning("Skipping unreadable usage line %s:%d: %s", path.name, line_number, e)
        return records

    def summarize(self, day: Optional[date] = None) -> Dict[str, Any]:
        """
        Aggregate one day's usage.

        Uses the on-disk log when there is one, otherwise this process's records.
        """
        day = day or self.clock().date()
        if self.log_dir is not None:
            records = self.load(day)
        else:
            records = [r for r in self.records if r.timestamp.date() == day]

        def bucket():
            return {"calls": 0, "total_tokens": 0, "cost_usd": 0.0}

        by_model = defaultdict(bucket)
        by_operation = defaultdict(bucket)
        totals = TokenUsage()
        cost_usd = 0.0
        cost_local = 0.0
        for r in records:
            totals = totals + r.usage
            cost_usd += r.cost.total
            cost_local += r.cost.local_currency_total
            for group, key in ((by_model, r.model), (by_operation, r.operation)):
                group[key]["calls"] += 1
                group[key]["total_tokens"] += r.usage.total_tokens
                group[key]["cost_usd"] += r.cost.total

        return {
            "date": day.isoformat(),
            "total_calls": len(records),
            "prompt_tokens": totals.prompt_tokens,
            "completion_tokens": totals.completion_tokens,
            "total_tokens": totals.total_tokens,
            "cost_usd": cost_usd,
            "cost_local": cost_local,
            "cost_local_formatted": format_local_cost(cost_local),
            "by_model": dict(by_model),
            "by_operation": dict(by_operation),
        }
