from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional, Sequence

from .logutil import logger
from .config import AppConfig, load_config, save_config
from .engine import BrowseEngine, BrowseListener
from .grouping import group_facets, sort_facets
from .models import FacetType, Record, SortMethod, format_author_name
from .persist import ViewStatePersistence
from .sorting import SORT_LABELS
from .source import CalibreSource


class PrintListener(BrowseListener):
    def on_status(self, message: str) -> None:
        logger.debug("Status: {}", message)

    def on_selection_changed(self, record: Optional[Record]) -> None:
        if record is not None:
            logger.info("Selected record {}: {}", record.id, record.title)


def _engine(cfg: AppConfig, listener: Optional[BrowseListener] = None) -> BrowseEngine:
    persistence = ViewStatePersistence.on_disk(cfg.session_path(), cfg.durable_path(), cfg.session_days)
    return BrowseEngine(
        CalibreSource(cfg.normalized_root()),
        persistence,
        listener=listener or PrintListener(),
        page_size=cfg.page_size,
    )


def _record_line(record: Record) -> str:
    parts = [f"{record.id:>6}", record.title, record.display_authors()]
    series = record.series_label()
    if series:
        parts.append(f"[{series}]")
    if record.formats:
        parts.append(",".join(record.display_formats()))
    return "  ".join(parts)


def _print_records(records: Sequence[Record]) -> None:
    for record in records:
        print(_record_line(record))


def _print_details(record: Record) -> None:
    print(f"Title:     {record.title}")
    print(f"Authors:   {record.display_authors()}")
    rows = [
        ("Series", record.series_label()),
        ("Tags", ", ".join(record.tags)),
        ("Publisher", record.publisher),
        ("Published", record.pubdate[:10] if record.pubdate else None),
        ("Rating", record.rating_label()),
        ("Formats", ", ".join(record.display_formats()) or "No formats available"),
    ]
    for label, value in rows:
        if value:
            print(f"{label + ':':<10} {value}")
    if record.comments:
        print()
        print(record.comments)


def cmd_init(args):
    cfg = load_config()  # creates default if missing
    if args.root:
        cfg.libraries_root = args.root
        save_config(cfg)
    cfg.normalized_state_dir().mkdir(parents=True, exist_ok=True)
    logger.info("Libraries root: {}", cfg.normalized_root())
    logger.info("State dir: {}", cfg.normalized_state_dir())


def cmd_libraries(args):
    cfg = load_config()
    source = CalibreSource(cfg.normalized_root())
    for lib in source.list_libraries():
        print(f"{lib.id}  {lib.name} ({lib.record_count})")
    return 0


def cmd_browse(args):
    cfg = load_config()
    engine = _engine(cfg)
    engine.start()
    if args.library and args.library != engine.active_library_id:
        if not engine.activate_library(args.library):
            logger.error("Cannot open library {}: {}", args.library, engine.status)
            return 1
    if engine.active_library_id is None:
        logger.error("No library available: {}", engine.status)
        return 1

    if args.clear:
        engine.clear_filters()
    for facet_id in args.toggle_author or []:
        engine.toggle_facet(FacetType.AUTHOR, facet_id)
    for facet_id in args.toggle_tag or []:
        engine.toggle_facet(FacetType.TAG, facet_id)
    for facet_id in args.toggle_series or []:
        engine.toggle_facet(FacetType.SERIES, facet_id)
    for name in args.toggle_format or []:
        engine.toggle_format(name)
    if args.clear_search:
        engine.clear_search()
    if args.search is not None:
        engine.set_search(args.search)
    if args.sort:
        engine.set_sort(args.sort)

    rows = args.rows
    engine.fill_viewport(lambda: len(engine.visible_records()) < rows)
    for _ in range(args.more):
        if not engine.load_more():
            break

    counts = {k: v for k, v in engine.selection_counts().items() if v}
    logger.info(
        "{} of {} records, sorted by {}{}",
        len(engine.ordered),
        len(engine.catalog),
        SORT_LABELS[engine.state.sort_method],
        f", filters {counts}" if counts else "",
    )
    if engine.state.search_term:
        logger.info("Search: {!r}", engine.state.search_term)
    visible = engine.visible_records()
    _print_records(visible)
    if engine.has_more:
        print(f"... {len(engine.ordered) - len(visible)} more")
    return 0


def cmd_facets(args):
    cfg = load_config()
    engine = _engine(cfg)
    if engine.start() is None:
        logger.error("No library available: {}", engine.status)
        return 1
    if args.type == "format":
        selected = {f.upper() for f in engine.state.selected_formats}
        for name, count in engine.catalog.format_counts():
            mark = "*" if name in selected else " "
            print(f"{mark} {name} ({count})")
        return 0

    facet_type = FacetType(args.type)
    selected = engine.state.facet_selection(facet_type)
    groups = group_facets(sort_facets(engine.catalog.index.facets(facet_type)), cfg.group_threshold)

    def line(facet):
        mark = "*" if facet.id in selected else " "
        name = format_author_name(facet.name) if facet_type is FacetType.AUTHOR else facet.name
        return f"{mark} {facet.id:>6}  {name} ({facet.count})"

    if not groups.is_grouped:
        for facet in groups.entries:
            print(line(facet))
        return 0
    for bucket in groups.buckets:
        expanded = args.expand_all or bucket.expanded
        print(f"{'v' if expanded else '>'} {bucket.key} ({len(bucket.entries)})")
        if expanded:
            for facet in bucket.entries:
                print("  " + line(facet))
    return 0


def cmd_select(args):
    cfg = load_config()
    engine = _engine(cfg)
    if engine.start() is None:
        logger.error("No library available: {}", engine.status)
        return 1
    record = engine.select_record(args.record_id)
    if record is None:
        logger.error("Record {} not found in the active library", args.record_id)
        return 1
    _print_details(record)
    return 0


def cmd_state(args):
    cfg = load_config()
    persistence = ViewStatePersistence.on_disk(cfg.session_path(), cfg.durable_path(), cfg.session_days)
    state = persistence.load_view_state()
    print(json.dumps(state.to_snapshot() if state else None, indent=2))
    return 0


def cmd_prefs(args):
    cfg = load_config()
    engine = _engine(cfg)
    if args.view_mode:
        engine.set_view_mode(args.view_mode)
    if args.cover_size is not None:
        engine.set_cover_size(args.cover_size)
    for column in args.toggle_column or []:
        engine.toggle_column(column)
    for section in args.toggle_section or []:
        engine.toggle_section(section)
    print(json.dumps(engine.preferences.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse Calibre e-book libraries")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Write default config and create the state dir")
    p_init.add_argument("--root", help="Directory holding Calibre libraries")
    p_init.set_defaults(func=cmd_init)

    p_libs = sub.add_parser("libraries", help="List discovered libraries")
    p_libs.set_defaults(func=cmd_libraries)

    p_browse = sub.add_parser("browse", help="Filter, sort and list records")
    p_browse.add_argument("--library", help="Library id to activate")
    p_browse.add_argument("--toggle-author", type=int, action="append", metavar="ID")
    p_browse.add_argument("--toggle-tag", type=int, action="append", metavar="ID")
    p_browse.add_argument("--toggle-series", type=int, action="append", metavar="ID")
    p_browse.add_argument("--toggle-format", action="append", metavar="NAME")
    p_browse.add_argument("--search")
    p_browse.add_argument("--clear-search", action="store_true")
    p_browse.add_argument("--clear", action="store_true", help="Clear all facet filters and the search")
    p_browse.add_argument("--sort", choices=[m.value for m in SortMethod])
    p_browse.add_argument("--rows", type=int, default=40, help="Records that fit on screen")
    p_browse.add_argument("--more", type=int, default=0, help="Extra pages to load")
    p_browse.set_defaults(func=cmd_browse)

    p_facets = sub.add_parser("facets", help="List facet values of the active library")
    p_facets.add_argument("type", choices=[t.value for t in FacetType] + ["format"])
    p_facets.add_argument("--expand-all", action="store_true")
    p_facets.set_defaults(func=cmd_facets)

    p_select = sub.add_parser("select", help="Select a record and show its details")
    p_select.add_argument("record_id", type=int)
    p_select.set_defaults(func=cmd_select)

    p_state = sub.add_parser("state", help="Print the saved session state")
    p_state.set_defaults(func=cmd_state)

    p_prefs = sub.add_parser("prefs", help="Show or change display preferences")
    p_prefs.add_argument("--view-mode", choices=["grid", "table"])
    p_prefs.add_argument("--cover-size", type=int)
    p_prefs.add_argument("--toggle-column", action="append", metavar="COLUMN")
    p_prefs.add_argument("--toggle-section", action="append", metavar="SECTION")
    p_prefs.set_defaults(func=cmd_prefs)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args) or 0
    except ValueError as e:
        logger.error("{}", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
