import argparse
import sys

from fantasy.core.config import settings
from fantasy.core.errors import FantasyError
from fantasy.db.session import build_engine
from fantasy.services.seasons import COPYABLE, DEFAULT_COPY, SeasonRegistry


def parse_collections(raw):
    if not raw:
        return list(DEFAULT_COPY)
    if raw == "all":
        return list(COPYABLE)
    return [c.strip() for c in raw.split(",") if c.strip()]


def print_stats(stats):
    d, m = stats["drivers"], stats["managers"]
    print(f"  {stats['year']}:")
    print(f"    Drivers:  {d['count']} (total value £{d['total_value']:,.2f}, points {d['total_points']:,.0f})")
    print(f"    Managers: {m['count']} (total budget £{m['total_budget']:,.2f})")
    print(f"    Races:    {stats['races']['count']} ({stats['races']['processed']} processed)")
    print(f"    Rosters:  {stats['rosters']['count']}")


def cmd_list(registry, args):
    seasons = registry.list_seasons()
    if not seasons:
        print("No seasons with data found")
        return
    print("Available seasons:")
    for year in seasons:
        print_stats(registry.season_statistics(year))


def cmd_stats(registry, args):
    if args.year is None:
        return cmd_list(registry, args)
    print_stats(registry.season_statistics(args.year))


def cmd_init(registry, args):
    year = registry.default_season() if args.year is None else args.year
    result = registry.initialize_season(year)
    print(f"Initialized season {result['year']}:")
    for name in result["collections"]:
        print("   -", name)


def cmd_copy(registry, args):
    summary = registry.copy_season(args.source, args.target, parse_collections(args.collections))
    print(f"Copied {summary['source']} -> {summary['target']}:")
    for name in COPYABLE:
        print(f"   {name:9s} {summary[name]}")
    if summary["errors"]:
        print("Errors:")
        for err in summary["errors"]:
            print("   -", err)


def cmd_compare(registry, args):
    result = registry.compare_seasons(args.first, args.second)
    for year in result["seasons"]:
        print_stats(result["statistics"][str(year)])
    diff = result["difference"]
    print("  Difference:")
    print(f"    Drivers:  {diff['drivers']['count']:+d} (value {diff['drivers']['total_value']:+,.2f})")
    print(f"    Managers: {diff['managers']['count']:+d} (budget {diff['managers']['total_budget']:+,.2f})")
    print(f"    Races:    {diff['races']['count']:+d}")


def build_parser():
    ap = argparse.ArgumentParser(description="Manage season-partitioned data")
    ap.add_argument("--database-url", default=None, help=f"defaults to {settings.database_url}")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="list seasons holding data").set_defaults(func=cmd_list)

    p = sub.add_parser("stats", help="statistics for one season (or all)")
    p.add_argument("year", type=int, nargs="?")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("init", help="create a season's tables")
    p.add_argument("year", type=int, nargs="?", help="defaults to SEASON, then the current year")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("copy", help="copy drivers/managers/races between seasons")
    p.add_argument("source", type=int)
    p.add_argument("target", type=int)
    p.add_argument("collections", nargs="?", help="comma separated, or 'all' (default drivers,managers)")
    p.set_defaults(func=cmd_copy)

    p = sub.add_parser("compare", help="compare two seasons")
    p.add_argument("first", type=int)
    p.add_argument("second", type=int)
    p.set_defaults(func=cmd_compare)
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    registry = SeasonRegistry(build_engine(args.database_url))
    try:
        args.func(registry, args)
    except FantasyError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
