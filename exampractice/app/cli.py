from __future__ import annotations

"""Terminal front-end for the session engine.

The engine runs on a ThreadingScheduler; every command taken from the prompt
holds the scheduler's lock so clock ticks and debounced saves never interleave
with a command.
"""

import argparse
import logging
import string
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..catalog.models import EMQ, MBA, NUMERIC, SBA
from ..catalog.repository import FileRepository, load_catalog
from ..config.config import ConfigError, load_config, validate_config
from ..results.store import ParquetResultsSink, export_ndjson, load_all, query_topic_trend
from ..storage.kv import JsonDirectoryStore
from ..storage.persistence import FlaggedRegistry, WeakTopicStore
from ..util.logging_setup import setup_console_logging
from ..util.randomness import make_rng, seed_if_needed
from ..util.scheduler import ThreadingScheduler
from . import events as ev
from . import explain
from .selection import ENTRY_MODES, TYPE_FILTERS, SelectionCriteria, SelectionError
from .session_engine import EnginePhase, SessionEngine, SessionResult, SessionView

logger = logging.getLogger(__name__)

LETTERS = string.ascii_uppercase

HELP = (
    "Commands: <answer> | n next | p previous | g N go to | f flag | x L strike out | "
    "e end | s save & quit | r reset | ? help"
)


def _letter(i: int) -> str:
    return LETTERS[i] if 0 <= i < len(LETTERS) else str(i + 1)


def _option_token(token: str) -> Optional[int]:
    t = token.strip().upper()
    if len(t) == 1 and t in LETTERS:
        return LETTERS.index(t)
    if t.isdigit():
        return int(t) - 1
    return None


def parse_answer(view: SessionView, text: str) -> Any:
    """Turn typed input into the raw answer shape the engine expects."""
    qtype = view.question.type
    if qtype == NUMERIC:
        return text
    if qtype == SBA:
        return _option_token(text)
    parts = [p for p in text.replace(" ", ",").split(",") if p.strip()]
    return [_option_token(p) for p in parts]


def render(view: SessionView) -> str:
    q = view.question
    lines = [f"[{view.display_code}] Question {view.index + 1}/{view.count}  ({q.type.upper()}, {q.topic_label})"]
    if view.time_left is not None:
        mins, secs = divmod(int(view.time_left), 60)
        lines.append(f"Time left {mins:02d}:{secs:02d}")
    if q.type == EMQ:
        lines.append(f"Theme: {q.theme}")
    lines.append(q.stem)
    for i, opt in enumerate(view.options):
        mark = "~" if i in view.state.struck_out_options else " "
        if view.revealed and view.correct_index == i:
            mark = "*"
        lines.append(f" {mark}{_letter(i)}. {opt}")
    if q.type == EMQ:
        for n, stem in enumerate(q.stems):
            tail = ""
            if view.stem_correct_indices is not None:
                tail = f"  → {_letter(view.stem_correct_indices[n])}"
            lines.append(f"  {n + 1}) {stem.text}{tail}")
    if q.type == MBA:
        lines.append(f"Select {q.required_count} options (comma-separated).")
        if view.revealed:
            lines.append("Answer: " + ", ".join(_letter(i) for i in sorted(q.correct)))
    if q.type == NUMERIC:
        lines.append(f"Answer in {q.unit}" if q.unit else "Numeric answer")
        if view.revealed:
            lines.append(f"Expected {q.correct_answer:g} ± {q.tolerance:g}")
    if view.state.graded:
        lines.append(f"Status: {view.state.status}  (your answer: {view.state.answer})")
        if view.revealed and q.explanation:
            lines.append(q.explanation)
    if view.state.flagged:
        lines.append("[flagged]")
    lines.append(f"Score {view.total_score}/{view.total_possible}  answered {view.answered}/{view.count}")
    return "\n".join(lines)


def format_result(result: SessionResult) -> str:
    lines = [f"Final score: {result.label} ({result.ratio:.0%})"]
    if result.distinction:
        lines.append("Distinction!")
    if result.timed_out:
        lines.append("Time ran out.")
    for t in sorted(result.topics, key=lambda t: t.ratio):
        lines.append(f"  {t.topic}: {t.score}/{t.possible}")
    return "\n".join(lines)


def _load_cfg(path: Optional[str]) -> Dict[str, Any]:
    return validate_config(load_config(path))


def _store(cfg: Dict[str, Any]) -> JsonDirectoryStore:
    return JsonDirectoryStore(cfg["storage"]["data_dir"])


def _cmd_catalog(cfg: Dict[str, Any], path: Optional[str]) -> int:
    load = load_catalog(FileRepository(path or cfg["catalog"]["path"]))
    print(load.notice())
    if load.error:
        return 1
    counts = load.counts_by_type()
    for qtype in (SBA, EMQ, MBA, NUMERIC):
        print(f"  {qtype}: {counts.get(qtype, 0)}")
    for rec in load.skipped:
        logger.debug("skipped #%d (%s): %s", rec.index, rec.raw_id, rec.reason)
    return 0


def _cmd_flagged(cfg: Dict[str, Any], remove: Optional[str]) -> int:
    registry = FlaggedRegistry(_store(cfg), key=cfg["storage"]["flagged_key"])
    if remove:
        if not registry.remove(remove):
            print(f"{remove} is not flagged.")
            return 1
        print(f"Removed {remove}.")
        return 0
    entries = registry.all()
    if not entries:
        print("No flagged questions.")
    for qid, entry in sorted(entries.items(), key=lambda kv: kv[1].flagged_at):
        print(f"{qid}\t{entry.status}\t{entry.flagged_at.isoformat()}")
    return 0


def _cmd_weak_topics(cfg: Dict[str, Any]) -> int:
    weights = WeakTopicStore(_store(cfg), key=cfg["storage"]["weak_topics_key"]).weights()
    if not weights:
        print("No weak topics recorded.")
    for topic, w in sorted(weights.items(), key=lambda kv: -kv[1]):
        print(f"{w:3d}  {topic}")
    return 0


def _cmd_history(cfg: Dict[str, Any], topic: Optional[str], export: Optional[str]) -> int:
    from analytics import load_and_prepare, topic_summary

    data_dir = Path(cfg["results"]["data_dir"])
    if topic:
        df = query_topic_trend(load_all(data_dir), topic=topic)
        print(df[["session_start", "mode", "score", "possible", "acc"]].to_string(index=False))
    else:
        df = topic_summary(load_and_prepare(data_dir))
        print(df.to_string(index=False) if not df.empty else "No results recorded.")
    if export:
        export_ndjson(df, Path(export))
        print(f"Exported {len(df)} rows to {export}")
    return 0


def _cmd_run(cfg: Dict[str, Any], args: argparse.Namespace) -> int:
    seed = seed_if_needed()
    scheduler = ThreadingScheduler()
    sink = ParquetResultsSink(cfg["results"]["data_dir"]) if cfg["results"]["enabled"] else None
    engine = SessionEngine(cfg, _store(cfg), scheduler, rng=make_rng(seed), results_sink=sink)

    engine.events.subscribe(ev.NOTICE, lambda msg: print(f"* {msg}"))
    engine.events.subscribe(ev.WARNING, lambda msg: print(f"[WARN] {msg}"))
    engine.events.subscribe(ev.ENDED, lambda result: print("\n" + format_result(result)))

    with scheduler.lock:
        load = engine.load_catalog(FileRepository(args.catalog or cfg["catalog"]["path"]))
    if not load.ok:
        return 1

    try:
        criteria = SelectionCriteria.from_params(
            mode=args.mode,
            question_type=args.type,
            topic=args.topic,
            topic_id=args.topic_id,
            exam_id=args.exam,
            shuffle=not args.no_shuffle,
        )
    except SelectionError as exc:
        print(exc)
        return 2

    with scheduler.lock:
        if args.fresh:
            engine.discard_saved()
            outcome = engine.start(criteria)
        else:
            outcome = engine.resume(criteria)
            if outcome:
                print(outcome.message)
            else:
                outcome = engine.start(criteria)
        if not outcome:
            print(outcome.message)
            return 1
        if engine.phase is not EnginePhase.ACTIVE:
            return 0
        print(HELP)
        print(render(engine.view()))

    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            line = "s"
        with scheduler.lock:
            if engine.phase is not EnginePhase.ACTIVE:
                return 0
            done = _dispatch(engine, line)
            if done:
                return 0
            view = engine.view()
            if engine.phase is EnginePhase.ACTIVE and view is not None:
                print(render(view))


def _dispatch(engine: SessionEngine, line: str) -> bool:
    """Apply one typed command. Returns True when the loop should stop."""
    if not line:
        return False
    cmd, _, rest = line.partition(" ")
    key = cmd.lower()
    idx = engine.current_index
    if key == "?":
        print(HELP)
        return False
    if key == "n":
        outcome = engine.next()
    elif key == "p":
        outcome = engine.previous()
    elif key == "g" and rest.strip().isdigit():
        outcome = engine.navigate(int(rest.strip()) - 1)
    elif key == "f":
        outcome = engine.toggle_flag(idx)
    elif key == "x":
        opt = _option_token(rest)
        outcome = engine.strike_out(idx, opt if opt is not None else -1)
    elif key == "e":
        engine.end()
        return True
    elif key == "s":
        print(engine.suspend().message)
        return True
    elif key == "r":
        print(engine.abandon().message)
        return True
    else:
        view = engine.view()
        if view is None:
            return True
        outcome = engine.submit_answer(idx, parse_answer(view, line))
    if outcome.message and not outcome.ok:
        print(outcome.message)
    return False


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="exampractice")
    p.add_argument("--config", default=None, help="Path to YAML config")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("--log-file", dest="log_file", default=None, help="Also write log lines to this file")
    sub = p.add_subparsers(dest="cmd", required=True)

    cp = sub.add_parser("catalog", help="Load a catalog and report what survived normalization")
    cp.add_argument("--path", default=None)

    rp = sub.add_parser("run", help="Start or resume a session")
    rp.add_argument("--catalog", default=None)
    rp.add_argument("--mode", choices=ENTRY_MODES, default=None)
    rp.add_argument("--type", choices=TYPE_FILTERS, default=None)
    rp.add_argument("--topic", default=None, help="Category; runs as a timed exam")
    rp.add_argument("--topic-id", dest="topic_id", default=None)
    rp.add_argument("--exam", type=int, default=None, help="Mock exam number")
    rp.add_argument("--no-shuffle", dest="no_shuffle", action="store_true")
    rp.add_argument("--fresh", action="store_true", help="Ignore any saved session")
    rp.add_argument("--explain", action="store_true")

    fp = sub.add_parser("flagged", help="List flagged questions")
    fp.add_argument("--remove", default=None, metavar="ID")

    sub.add_parser("weak-topics", help="Show weak-topic weights")

    hp = sub.add_parser("history", help="Per-topic results history")
    hp.add_argument("--topic", default=None)
    hp.add_argument("--export", default=None, metavar="NDJSON")

    args = p.parse_args(argv)
    setup_console_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    try:
        cfg = _load_cfg(args.config)
    except ConfigError as exc:
        print(exc)
        return 2

    if args.cmd == "catalog":
        return _cmd_catalog(cfg, args.path)
    if args.cmd == "flagged":
        return _cmd_flagged(cfg, args.remove)
    if args.cmd == "weak-topics":
        return _cmd_weak_topics(cfg)
    if args.cmd == "history":
        return _cmd_history(cfg, args.topic, args.export)
    if args.cmd == "run":
        explain.enable(bool(args.explain))
        return _cmd_run(cfg, args)
    return 1
