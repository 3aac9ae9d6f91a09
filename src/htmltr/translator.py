from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from tqdm import tqdm

from .chunking import Strategy, StrategyPlan, select_strategy, split_fixed_chunks
from .config import TranslatorConfig
from .llm import CompletionBackend, build_document_system_prompt, build_segment_system_prompt, strip_code_fence
from .metadata import apply_metadata_fields, build_metadata_fields
from .models import Issue, Segment, SegmentKind, Severity
from .segmenter import join_segments, parse_segments, split_whitespace
from .session import TranslationSession
from .skip_rules import SkipClassifier
from .structured_data import StructuredBlock, iter_string_slots, parse_structured_block


class TranslationError(RuntimeError):
    """A whole-document backend call failed; the document has no usable translation."""

    def __init__(self, message: str, *, piece_index: int | None = None, strategy: Strategy | None = None) -> None:
        super().__init__(message)
        self.piece_index = piece_index
        self.strategy = strategy


@dataclass
class _TextJob:
    segment: Segment
    lead: str
    core: str
    trail: str


@dataclass
class _BlockJob:
    segment: Segment
    block: StructuredBlock
    slots: list[tuple[Any, Any, str]]


class HTMLTranslator:
    """Structure-preserving HTML translator bound to one caller-owned session.

    Whole-document strategies send raw markup to the backend piece by piece.
    Granular mode translates text runs and JSON-LD strings individually and puts
    every tag back verbatim.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        target_lang: str | None = None,
        *,
        cfg: TranslatorConfig | None = None,
        session: TranslationSession | None = None,
        max_chunks: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.cfg = cfg or TranslatorConfig()
        if session is None:
            session = TranslationSession(
                target_lang=target_lang or self.cfg.translation.target_lang,
                max_chunks=max_chunks,
            )
        self.session = session
        self.logger = logger or logging.getLogger("htmltr")
        self.classifier = SkipClassifier(self.cfg.skip_rules)

    # Public contract

    def translate(self, markup: str, *, max_chunks: int | None = None) -> str:
        """Translate `markup`, choosing the strategy from size and chunk override.

        Raises TranslationError when a whole-document call fails (unless
        `translation.on_chunk_failure` is 'granular'). Segment failures never raise.
        """
        if not markup or not markup.strip():
            return markup or ""

        plan = self.plan(markup, max_chunks=max_chunks)
        self.logger.info(
            f"Strategy: {plan.strategy.value}; pieces={plan.pieces}; "
            f"estimated_tokens={plan.estimated_tokens}; threshold={plan.threshold}; "
            f"lang={self.session.target_lang}"
        )
        if plan.strategy == Strategy.GRANULAR:
            return self.translate_granular(markup)

        try:
            return self._translate_whole(markup, plan)
        except TranslationError as e:
            if self.cfg.translation.on_chunk_failure != "granular":
                raise
            self.logger.warning(f"Whole-document translation failed, retrying granular: {e}")
            self.session.issues.append(
                Issue(
                    code="chunk_fallback",
                    severity=Severity.WARN,
                    message=f"{plan.strategy.value} translation failed; fell back to granular mode: {e}",
                    details={"piece_index": e.piece_index, "pieces": plan.pieces},
                )
            )
            return self.translate_granular(markup)

    def plan(self, markup: str, *, max_chunks: int | None = None) -> StrategyPlan:
        if max_chunks is None:
            max_chunks = self.session.max_chunks
        if max_chunks is None:
            max_chunks = self.cfg.translation.default_chunk_count
        return select_strategy(
            markup,
            max_chunks=max_chunks,
            threshold=self.cfg.translation.single_call_token_threshold,
            chars_per_token=self.cfg.translation.chars_per_token,
        )

    def get_usage(self) -> dict[str, int]:
        return self.session.get_usage()

    def translate_text(self, text: str, *, phase: str = "segment") -> str:
        """Translate one text run through the session cache; never raises."""
        if self.classifier.should_skip(text):
            return text
        lead, core, trail = split_whitespace(text)
        if core not in self.session.cache:
            translated = self._translate_unit_safely(core, phase=phase)
            if translated is None:
                return text
            self.session.cache[core] = translated
        return lead + self.session.cache[core] + trail

    def translate_metadata(
        self,
        markup: str,
        original_title: str | None = None,
        original_description: str | None = None,
    ) -> str:
        """Best-effort patch of the H1, meta description and JSON-LD headline."""
        if not original_title and not original_description:
            return markup
        fields = build_metadata_fields(
            lambda value: self.translate_text(value, phase="metadata"),
            original_title=original_title,
            original_description=original_description,
        )
        return apply_metadata_fields(markup, fields)

    # Whole-document strategies

    def _translate_whole(self, markup: str, plan: StrategyPlan) -> str:
        pieces = [markup] if plan.pieces <= 1 else split_fixed_chunks(markup, plan.pieces)
        system = build_document_system_prompt(self.session.target_lang)
        out: list[str] = []
        for i, piece in enumerate(pieces):
            if not self._has_translatable_content(piece):
                out.append(piece)
                continue
            try:
                reply = self._complete(
                    system,
                    piece,
                    phase="document",
                    extra={"strategy": plan.strategy.value, "piece": i, "pieces": len(pieces)},
                )
            except Exception as e:
                raise TranslationError(
                    f"Piece {i + 1}/{len(pieces)} failed: {e}", piece_index=i, strategy=plan.strategy
                ) from e
            body = strip_code_fence(reply).strip()
            if not body:
                raise TranslationError(
                    f"Piece {i + 1}/{len(pieces)} came back empty", piece_index=i, strategy=plan.strategy
                )
            lead, _, trail = split_whitespace(piece)
            out.append(lead + body + trail)
        return "".join(out)

    def _has_translatable_content(self, piece: str) -> bool:
        """False when every text run is skippable and no JSON-LD string qualifies."""
        if not piece.strip():
            return False
        min_len = self.cfg.translation.min_structured_value_len
        for seg in parse_segments(piece):
            if seg.kind == SegmentKind.TEXT and not self.classifier.should_skip(seg.content):
                return True
            if seg.kind == SegmentKind.STRUCTURED:
                block = parse_structured_block(seg.content)
                if block is None:
                    continue
                for _, _, value in iter_string_slots(block.data, min_len=min_len):
                    if not self.classifier.should_skip(value):
                        return True
        return False

    # Granular strategy

    def translate_granular(self, markup: str) -> str:
        """Segment-level translation: tags verbatim, unique texts translated concurrently."""
        if not markup:
            return ""
        segments = parse_segments(markup)
        min_len = self.cfg.translation.min_structured_value_len

        text_jobs: list[_TextJob] = []
        block_jobs: list[_BlockJob] = []
        # normalized text -> phase of its first occurrence; dict keeps document order
        needed: dict[str, str] = {}

        for seg in segments:
            if seg.kind == SegmentKind.TEXT:
                if self.classifier.should_skip(seg.content):
                    continue
                lead, core, trail = split_whitespace(seg.content)
                text_jobs.append(_TextJob(seg, lead, core, trail))
                needed.setdefault(core, "segment")
            elif seg.kind == SegmentKind.STRUCTURED:
                block = parse_structured_block(seg.content)
                if block is None:
                    self.session.issues.append(
                        Issue(
                            code="json_ld_passthrough",
                            severity=Severity.INFO,
                            message="Script block is not parsable JSON; kept unchanged.",
                            details={"segment": seg.index},
                        )
                    )
                    continue
                slots = [
                    slot
                    for slot in iter_string_slots(block.data, min_len=min_len)
                    if not self.classifier.should_skip(slot[2])
                ]
                if not slots:
                    continue
                block_jobs.append(_BlockJob(seg, block, slots))
                for _, _, value in slots:
                    needed.setdefault(value.strip(), "structured_data")

        pending = [(core, phase) for core, phase in needed.items() if core not in self.session.cache]
        self.logger.info(
            f"Segments: {len(segments)}; text units: {len(text_jobs)}; "
            f"JSON-LD blocks: {len(block_jobs)}; backend calls: {len(pending)}"
        )
        self._translate_pending(pending)

        cache = self.session.cache
        for job in text_jobs:
            job.segment.translated = job.lead + cache.get(job.core, job.core) + job.trail
        for bjob in block_jobs:
            changed = False
            for container, slot, value in bjob.slots:
                lead, core, trail = split_whitespace(value)
                translated = lead + cache.get(core, core) + trail
                if translated != value:
                    container[slot] = translated
                    changed = True
            if changed:
                bjob.segment.translated = bjob.block.render()
        return join_segments(segments)

    def _translate_pending(self, pending: list[tuple[str, str]]) -> None:
        if not pending:
            return
        system = build_segment_system_prompt(self.session.target_lang)
        workers = max(1, min(self.cfg.translation.concurrency, len(pending)))
        results: list[str | None] = [None] * len(pending)
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = {
                ex.submit(self._complete, system, core, phase=phase): idx
                for idx, (core, phase) in enumerate(pending)
            }
            progress = tqdm(
                as_completed(futures),
                total=len(futures),
                desc="Translate",
                unit="seg",
                disable=not self.cfg.translation.show_progress,
            )
            for fut in progress:
                idx = futures[fut]
                core, phase = pending[idx]
                try:
                    reply = fut.result()
                except Exception as e:
                    self._record_unit_failure(core, phase, e)
                    continue
                results[idx] = self._accept_reply(core, phase, reply)

        # Cache writes stay on this thread and follow document order, not completion order.
        for idx, (core, _) in enumerate(pending):
            if results[idx] is not None:
                self.session.cache[core] = results[idx]

    def _translate_unit_safely(self, core: str, *, phase: str) -> str | None:
        system = build_segment_system_prompt(self.session.target_lang)
        try:
            reply = self._complete(system, core, phase=phase)
        except Exception as e:
            self._record_unit_failure(core, phase, e)
            return None
        return self._accept_reply(core, phase, reply)

    def _accept_reply(self, core: str, phase: str, reply: str) -> str | None:
        translated = reply.strip()
        if not translated:
            self.logger.warning(f"Empty translation for {phase} text: {core[:80]!r}")
            self.session.issues.append(
                Issue(
                    code="empty_translation",
                    severity=Severity.WARN,
                    message="Backend returned an empty translation; source text kept.",
                    details={"phase": phase, "source": core[:300]},
                )
            )
            return None
        return translated

    def _record_unit_failure(self, core: str, phase: str, error: Exception) -> None:
        self.logger.warning(f"Translation failed for {phase} text {core[:80]!r}: {error}")
        self.session.issues.append(
            Issue(
                code="llm_error",
                severity=Severity.WARN,
                message=f"Backend error; source text kept: {error}",
                details={"phase": phase, "source": core[:300]},
            )
        )

    # Backend

    def _complete(self, system: str, user: str, *, phase: str, extra: dict[str, Any] | None = None) -> str:
        completion = self.backend.complete(system, user)
        self.session.record_usage(
            completion.usage,
            provider=str(getattr(self.backend, "provider", "unknown")),
            model=completion.model or str(getattr(self.backend, "model", "")),
            phase=phase,
            extra=extra,
        )
        return completion.text


def translate_html(
    markup: str,
    session: TranslationSession,
    backend: CompletionBackend,
    cfg: TranslatorConfig | None = None,
    *,
    max_chunks: int | None = None,
    logger: logging.Logger | None = None,
) -> str:
    """Functional form: translate `markup` using the caller's session explicitly."""
    translator = HTMLTranslator(backend, cfg=cfg, session=session, logger=logger)
    return translator.translate(markup, max_chunks=max_chunks)
