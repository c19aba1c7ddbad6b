"""Preview history and the statistics derived from it."""

from collections import Counter, deque
from datetime import datetime, timezone

from pydantic import BaseModel

from outreach_api.schemas.email import Tone

DEFAULT_TONE = Tone.FRIENDLY.value


class PreviewRecord(BaseModel):
    lead_id: int
    lead_name: str
    tone: str
    variant_count: int
    timestamp: datetime


class Analytics(BaseModel):
    total_previews: int = 0
    total_variants: int = 0
    avg_variants_per_preview: float = 0.0
    most_used_tone: str = DEFAULT_TONE
    total_personalizations: int = 0


class PreviewHistory:
    """Most recent previews, newest first, capped at ``size`` entries."""

    def __init__(self, size: int = 50):
        self._records: deque[PreviewRecord] = deque(maxlen=size)

    def record(self, lead_id: int, lead_name: str, tone: str, variant_count: int) -> PreviewRecord:
        entry = PreviewRecord(
            lead_id=lead_id,
            lead_name=lead_name,
            tone=tone,
            variant_count=variant_count,
            timestamp=datetime.now(timezone.utc),
        )
        self._records.appendleft(entry)
        return entry

    def records(self) -> list[PreviewRecord]:
        return list(self._records)

    def summarize(self) -> Analytics:
        if not self._records:
            return Analytics()

        total_previews = len(self._records)
        total_variants = sum(r.variant_count for r in self._records)
        # Counter.most_common keeps insertion order on ties, so the newest tone wins
        most_used_tone = Counter(r.tone for r in self._records).most_common(1)[0][0]
        return Analytics(
            total_previews=total_previews,
            total_variants=total_variants,
            avg_variants_per_preview=total_variants / total_previews,
            most_used_tone=most_used_tone,
            total_personalizations=total_variants,
        )
