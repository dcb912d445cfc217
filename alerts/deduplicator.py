"""Alert deduplication and merging."""
import dataclasses
import logging
from collections import defaultdict

from models.enums import DedupStrategy, SEVERITY_ORDER, severity_rank
from utils.cache import BoundedCache
from utils.errors import ClassificationError
from utils.fingerprint import alert_fingerprint, fingerprint_components
from utils.similarity import message_similarity

logger = logging.getLogger("equipalert.alerts.deduplicator")

STRATEGIES = {s.value for s in DedupStrategy}
SETTINGS = {
    "strategy", "window_minutes", "enable_time_window", "enable_content_analysis",
    "enable_smart_merging", "content_threshold", "enable_caching", "max_cache_size",
}


class _AlertIndex:
    """Four lookups over a set of alerts: fingerprint, unique id, content key and time bucket."""

    def __init__(self):
        self.by_hash = {}
        self.by_unique_id = {}
        self.by_content = defaultdict(list)
        self.by_time_window = defaultdict(list)


class AlertDeduplicator:
    """Filters new alerts against existing ones and against each other.

    Reads the ``deduplication`` config section. Strategies:

    * ``hash``: identical fingerprint
    * ``id``: identical ``unique_id``
    * ``content``: same equipment, rule and event type with a similar message
    * ``time``: same equipment and rule inside one time window
    * ``smart``: hash, then id, then time, then content
    """

    def __init__(self, config=None, similarity=message_similarity):
        self.config = config or {}
        cfg = self.config.get("deduplication", {})
        self.strategy = cfg.get("strategy", DedupStrategy.HASH.value)
        self.window_minutes = cfg.get("window_minutes", 60)
        self.enable_time_window = cfg.get("enable_time_window", True)
        self.enable_content_analysis = cfg.get("enable_content_analysis", True)
        self.enable_smart_merging = cfg.get("enable_smart_merging", False)
        self.content_threshold = cfg.get("content_threshold", 0.9)
        self.enable_caching = cfg.get("enable_caching", True)
        self.max_cache_size = cfg.get("max_cache_size", 10_000)
        self.similarity = similarity

        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown deduplication strategy: {self.strategy}")

        # Fingerprint components -> hash; never used as a duplicate verdict
        self._hash_cache = BoundedCache(max_size=self.max_cache_size)
        self.reset_stats()

    @property
    def window_ms(self):
        return self.window_minutes * 60_000

    # ── Keys ────────────────────────────────────────────

    def alert_hash(self, alert):
        components = fingerprint_components(alert)
        if not self.enable_caching:
            return alert_fingerprint(components=components)

        cached = self._hash_cache.get(components)
        if cached is not None:
            self._stats["cache_hits"] += 1
            return cached
        self._stats["cache_misses"] += 1
        digest = alert_fingerprint(components=components)
        self._hash_cache.set(components, digest)
        return digest

    @staticmethod
    def content_key(alert):
        return f"{alert.equipamento}|{alert.rule_id}|{alert.event_type or 'UNKNOWN'}"

    def time_window_key(self, alert):
        return f"{alert.equipamento}|{alert.rule_id}|{alert.timestamp // self.window_ms}"

    def _add_to_index(self, alert, index):
        index.by_hash[self.alert_hash(alert)] = alert
        if alert.unique_id:
            index.by_unique_id[alert.unique_id] = alert
        if self.enable_content_analysis:
            index.by_content[self.content_key(alert)].append(alert)
        if self.enable_time_window:
            index.by_time_window[self.time_window_key(alert)].append(alert)

    def build_index(self, alerts):
        index = _AlertIndex()
        for alert in alerts:
            self._add_to_index(alert, index)
        return index

    # ── Classification ──────────────────────────────────

    def _by_hash(self, alert, indexes):
        digest = self.alert_hash(alert)
        return any(digest in index.by_hash for index in indexes)

    def _by_id(self, alert, indexes):
        if not alert.unique_id:
            return False
        return any(alert.unique_id in index.by_unique_id for index in indexes)

    def _by_content(self, alert, indexes):
        key = self.content_key(alert)
        for index in indexes:
            for candidate in index.by_content.get(key, ()):
                if self.contents_similar(alert, candidate):
                    return True
        return False

    def _by_time_window(self, alert, indexes):
        key = self.time_window_key(alert)
        for index in indexes:
            for candidate in index.by_time_window.get(key, ()):
                if self.in_same_window(alert, candidate):
                    return True
        return False

    def _by_smart(self, alert, indexes):
        if self._by_hash(alert, indexes) or self._by_id(alert, indexes):
            return True
        if self.enable_time_window and self._by_time_window(alert, indexes):
            return True
        if self.enable_content_analysis:
            return self._by_content(alert, indexes)
        return False

    def is_duplicate(self, alert, *indexes):
        checks = {
            DedupStrategy.HASH.value: self._by_hash,
            DedupStrategy.ID.value: self._by_id,
            DedupStrategy.CONTENT.value: self._by_content,
            DedupStrategy.TIME.value: self._by_time_window,
            DedupStrategy.SMART.value: self._by_smart,
        }
        try:
            return checks[self.strategy](alert, indexes)
        except Exception as e:
            raise ClassificationError(str(e), alert_id=alert.id, strategy=self.strategy) from e

    def contents_similar(self, a, b):
        if a.equipamento != b.equipamento or a.rule_id != b.rule_id or a.event_type != b.event_type:
            return False
        if a.duration and b.duration and abs(a.duration - b.duration) > self.window_minutes:
            return False
        return self.similarity(a.message, b.message) >= self.content_threshold

    def in_same_window(self, a, b):
        if a.equipamento != b.equipamento or a.rule_id != b.rule_id:
            return False
        return abs(a.timestamp - b.timestamp) <= self.window_ms

    # ── Public API ──────────────────────────────────────

    def deduplicate(self, new_alerts, existing_alerts=()):
        """Order-preserving subset of ``new_alerts`` that are not duplicates.

        An alert whose classification fails is kept.
        """
        new_alerts = list(new_alerts or [])
        self._stats["total_processed"] += len(new_alerts)

        existing_index = self.build_index(existing_alerts or [])
        batch_index = _AlertIndex()
        unique = []
        duplicates = 0

        for alert in new_alerts:
            try:
                duplicate = self.is_duplicate(alert, existing_index, batch_index)
            except ClassificationError as e:
                logger.error(f"Dedup classification failed, keeping alert: {e}")
                duplicate = False

            if duplicate:
                duplicates += 1
                logger.debug(f"Duplicate alert {alert.id} ({alert.equipamento}, rule {alert.rule_id})")
                continue

            unique.append(alert)
            try:
                self._add_to_index(alert, batch_index)
            except Exception as e:
                logger.error(f"Could not index alert {alert.id}: {e}")

        self._stats["duplicates_found"] += duplicates
        self._stats["unique_alerts"] += len(unique)
        logger.info(f"Deduplicated {len(new_alerts)} alerts: {len(unique)} unique, {duplicates} duplicates "
                    f"(strategy={self.strategy})")
        return unique

    def can_merge(self, a, b):
        if a.equipamento != b.equipamento or a.rule_id != b.rule_id:
            return False
        if abs(severity_rank(a.severity) - severity_rank(b.severity)) > 1:
            return False
        return abs(a.timestamp - b.timestamp) <= self.window_ms

    def merge_alerts(self, alerts):
        """Collapse near-duplicate alerts into one. A no-op unless smart merging is enabled."""
        alerts = list(alerts or [])
        if not self.enable_smart_merging or len(alerts) < 2:
            return alerts

        merged = []
        used = set()
        for i, base in enumerate(alerts):
            if i in used:
                continue
            used.add(i)
            group = [base]
            for j in range(i + 1, len(alerts)):
                if j not in used and self.can_merge(base, alerts[j]):
                    group.append(alerts[j])
                    used.add(j)

            if len(group) == 1:
                merged.append(base)
            else:
                merged.append(self._merge_group(group))
                self._stats["merged_alerts"] += 1
        return merged

    def _merge_group(self, group):
        latest = max(group, key=lambda a: a.timestamp)
        top = max((severity_rank(a.severity) for a in group), default=0)
        severity = SEVERITY_ORDER[top] if top >= 0 else latest.severity
        return dataclasses.replace(
            latest,
            severity=severity,
            merged_from=[a.id for a in group],
            merged_count=len(group),
            record_count=sum(a.record_count or 1 for a in group),
            message=f"{latest.message} ({len(group)} eventos mesclados)",
            metadata=dict(latest.metadata),
            equipment_groups=list(latest.equipment_groups),
        )

    # ── Stats & config ──────────────────────────────────

    def get_stats(self):
        stats = dict(self._stats)
        lookups = stats["cache_hits"] + stats["cache_misses"]
        processed = stats["total_processed"]
        stats["cache_hit_rate"] = stats["cache_hits"] / lookups * 100 if lookups else 0.0
        stats["deduplication_rate"] = stats["duplicates_found"] / processed * 100 if processed else 0.0
        stats["cache_size"] = len(self._hash_cache)
        stats["strategy"] = self.strategy
        stats["window_minutes"] = self.window_minutes
        return stats

    def reset_stats(self):
        self._stats = {
            "total_processed": 0,
            "duplicates_found": 0,
            "unique_alerts": 0,
            "merged_alerts": 0,
            "cache_hits": 0,
            "cache_misses": 0,
        }

    def clear_caches(self):
        self._hash_cache.clear()
        logger.debug("Dedup caches cleared")

    def update_config(self, **changes):
        """Change settings in place. Caches are cleared when the strategy changes."""
        old_strategy = self.strategy
        for key, value in changes.items():
            if key not in SETTINGS:
                raise ValueError(f"Unknown deduplication setting: {key}")
            if key == "strategy" and value not in STRATEGIES:
                raise ValueError(f"Unknown deduplication strategy: {value}")
            setattr(self, key, value)
        if "max_cache_size" in changes:
            self._hash_cache = BoundedCache(max_size=self.max_cache_size)
        if self.strategy != old_strategy:
            self.clear_caches()
        logger.debug(f"Dedup config updated: {changes}")
