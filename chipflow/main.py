import argparse
import json
import logging
import sys

from chipflow.calculation.manager import CalculationManager, format_summary
from chipflow.calculation.reachability import find_reachable
from chipflow.datasystem.catalog_store import CatalogStore
from chipflow.design.snapshot_store import SnapshotStore


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="微流控芯片网络压力/流量仿真")
    parser.add_argument("snapshot", help="画布快照 JSON 文件")
    parser.add_argument("--catalog-dir", help="软管/流体目录所在目录 (catalog.json)")
    parser.add_argument("--reachability", action="store_true", help="只做泵可达性分析，不求解")
    parser.add_argument("--json", action="store_true", help="以 JSON 输出结果")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.reachability:
        store = SnapshotStore(args.snapshot)
        result = find_reachable(store.components(), store.connections())
        for key in sorted(result.segments):
            print(key.label)
        return 0

    catalog = CatalogStore(args.catalog_dir) if args.catalog_dir else None
    results = CalculationManager(args.snapshot, catalog).run()

    if args.json:
        print(json.dumps(results.to_dict(), ensure_ascii=False, indent=2, allow_nan=True))
    else:
        print(format_summary(results))
    return 0 if results.success else 1


if __name__ == "__main__":
    sys.exit(main())
