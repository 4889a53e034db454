import argparse
import csv
import json
import time

from dishscout.config import DEFAULT_LAT, DEFAULT_LNG
from dishscout.pipeline import CompetitorScraper, MenuItem, PipelineMode, PipelineOptions


def run_checks(items, lat: str, lng: str, workers: int, fresh: bool):
    options = PipelineOptions(
        mode=PipelineMode.FRESH_BROWSER if fresh else PipelineMode.SHARED_SESSION,
    )
    scraper = CompetitorScraper(options=options)
    started = time.perf_counter()
    try:
        analyses = scraper.analyze_menu(
            [MenuItem(name=name) for name in items],
            lat,
            lng,
            max_workers=workers,
        )
    finally:
        scraper.close()
    elapsed = time.perf_counter() - started

    results = []
    for analysis in analyses:
        analytics = analysis.analytics
        results.append({
            "item": analysis.item.name,
            "status": analysis.status,
            "avg_price": round(analytics.avg_price, 2) if analytics else "",
            "min_price": analytics.min.price if analytics and analytics.min else "",
            "max_price": analytics.max.price if analytics and analytics.max else "",
            "points": len(analytics.price_vs_distance) if analytics else 0,
            "error": analysis.error or "",
        })
    return results, elapsed


def write_outputs(results, elapsed, json_path: str, csv_path: str):
    payload = {
        "elapsed_seconds": round(elapsed, 2),
        "items": results,
    }
    with open(json_path, "w", encoding="utf-8") as json_handle:
        json.dump(payload, json_handle, indent=2)
    with open(csv_path, "w", newline="", encoding="utf-8") as csv_handle:
        writer = csv.writer(csv_handle)
        writer.writerow(["item", "status", "avg_price", "min_price", "max_price", "points", "error"])
        for row in sorted(results, key=lambda row: (row["points"], row["item"].lower())):
            writer.writerow([
                row["item"],
                row["status"],
                row["avg_price"],
                row["min_price"],
                row["max_price"],
                row["points"],
                row["error"],
            ])


def main():
    parser = argparse.ArgumentParser(description="QA check for competitor price scraping.")
    parser.add_argument("--items", nargs="+", required=True, help="Dish names to scrape")
    parser.add_argument("--lat", default=DEFAULT_LAT, help="Latitude to search around")
    parser.add_argument("--long", default=DEFAULT_LNG, help="Longitude to search around")
    parser.add_argument("--workers", type=int, default=4, help="Parallel items")
    parser.add_argument("--fresh", action="store_true", help="Launch a browser per item")
    parser.add_argument("--json", default="qa_report.json", help="Output JSON path")
    parser.add_argument("--csv", default="qa_report.csv", help="Output CSV path")
    args = parser.parse_args()

    results, elapsed = run_checks(
        args.items,
        args.lat,
        args.long,
        workers=args.workers,
        fresh=args.fresh,
    )
    write_outputs(results, elapsed, args.json, args.csv)
    failed = [row for row in results if row["status"] != "ok"]
    print(f"[qa] {len(results)} items checked in {elapsed:.2f}s")
    print(f"[qa] {len(failed)} items without analytics")
    for row in sorted(failed, key=lambda row: row["item"].lower()):
        print(f" - {row['item']} ({row['status']})")


if __name__ == "__main__":
    main()
