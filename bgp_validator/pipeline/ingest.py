#!/usr/bin/env python3
"""
Ingestion loop: feed messages -> facts -> result file

Drains the stream queue until the stream is dead. For every event with a
single origin AS, each announced prefix becomes a Fact; the emission policy
decides whether the validator is consulted and which facts reach the sink.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bgp_validator.models import (
    AS_SET_SENTINEL, EmissionPolicy, Fact, ServerMessage, Verdict,
)
from bgp_validator.utils.error_handling import ConfigurationError


@dataclass
class IngestionStats:
    """Counters for one ingestion run"""
    messages: int = 0
    pongs: int = 0
    feed_errors: int = 0
    skipped: int = 0  # No payload or no single origin AS
    facts_emitted: int = 0
    facts_rejected: int = 0
    verdicts: Dict[str, int] = field(
        default_factory=lambda: {verdict.value: 0 for verdict in Verdict}
    )

    def to_summary(self) -> str:
        lines = [
            f"Messages processed: {self.messages}",
            f"Pongs: {self.pongs}",
            f"Skipped (no single origin): {self.skipped}",
            f"Facts emitted: {self.facts_emitted}",
        ]
        if self.facts_rejected:
            lines.append(f"Facts rejected: {self.facts_rejected}")
        if any(self.verdicts.values()):
            lines.append(
                "Verdicts: " + ", ".join(f"{k}={v}" for k, v in self.verdicts.items())
            )
        if self.feed_errors:
            lines.append(f"Feed errors: {self.feed_errors}")
        return "\n".join(lines)


class IngestionLoop:
    """Consumer side of a RisLiveStream"""

    def __init__(self,
                 stream,
                 sink,
                 only_ipv4: bool = False,
                 validator=None,
                 policy: EmissionPolicy = EmissionPolicy.ALL,
                 fail_closed: bool = True,
                 poll_interval: float = 1.0,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            stream: Source with get(timeout) and killed() (a RisLiveStream)
            sink: Destination with write(fact, verdict) (a ResultWriter)
            only_ipv4: Drop prefixes without a '.'
            validator: RoutinatorValidator, required unless policy is ALL
            policy: Emission policy
            fail_closed: Under VALID_ONLY, reject facts with an UNKNOWN verdict
            poll_interval: Seconds to wait on the queue before re-checking the kill flag
        """
        if policy is not EmissionPolicy.ALL and validator is None:
            raise ConfigurationError(
                f"Emission policy '{policy.value}' requires an RPKI validator",
                guidance="Configure the validator section or use --policy all",
            )

        self.stream = stream
        self.sink = sink
        self.only_ipv4 = only_ipv4
        self.validator = validator
        self.policy = policy
        self.fail_closed = fail_closed
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self.stats = IngestionStats()

    def run(self) -> IngestionStats:
        """Consume until the stream is dead"""
        self.logger.info(
            f"Ingestion started (policy={self.policy.value}, only_ipv4={self.only_ipv4})"
        )
        while not self.stream.killed():
            message = self.stream.get(timeout=self.poll_interval)
            if message is None:
                continue
            self.process_message(message)

        self.logger.info(f"Ingestion finished: {self.stats.facts_emitted} facts emitted")
        return self.stats

    def process_message(self, message: ServerMessage) -> List[Fact]:
        """Extract, filter and emit the facts carried by one message"""
        self.stats.messages += 1

        if message.is_pong:
            self.logger.info("Received pong from RIS Live")
            self.stats.pongs += 1
            return []

        if message.is_error:
            self.logger.warning(f"RIS Live reported an error: {message.payload}")
            self.stats.feed_errors += 1
            return []

        if message.data is None:
            self.stats.skipped += 1
            return []

        origin_as = message.data.get_origin_as()
        if origin_as == AS_SET_SENTINEL:
            self.stats.skipped += 1
            return []

        emitted = []
        for prefix in message.data.get_prefixes(self.only_ipv4):
            fact = Fact(origin_as, prefix)
            accepted, verdict = self._accept(fact)
            if not accepted:
                self.stats.facts_rejected += 1
                continue
            self.sink.write(fact, verdict)
            self.stats.facts_emitted += 1
            emitted.append(fact)

        return emitted

    def _accept(self, fact: Fact) -> Tuple[bool, Optional[Verdict]]:
        if self.policy is EmissionPolicy.ALL:
            return True, None

        verdict = self.validator.validate(fact.origin_asn, fact.prefix)
        self.stats.verdicts[verdict.value] += 1

        if self.policy is EmissionPolicy.ANNOTATE:
            return True, verdict

        if verdict is Verdict.VALID:
            return True, verdict
        if verdict is Verdict.UNKNOWN and not self.fail_closed:
            return True, verdict
        return False, verdict
