"""
Pipeline Analytics — Entry Point
==================================

Runs one report against a tenant's HubSpot pipeline and prints it as JSON.

Run:
    python main.py report --tenant acme --pipeline default
    python main.py daily --tenant acme --pipeline default --date 2026-10-19 --output out/daily.json
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO")),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("pipeline-analytics")

from analytics.reports import PipelineReports  # noqa: E402
from models.pipeline_models import DateRange  # noqa: E402
from scripts.lib.errors import ReportError  # noqa: E402
from scripts.lib.utils import atomic_write_json  # noqa: E402

REPORTS = ["pipelines", "stages", "kpis", "pipeline", "seguimiento", "pedidos",
           "report", "items", "prices", "daily"]


def _date_range(args: argparse.Namespace):
    if args.start or args.end:
        return DateRange(start=args.start, end=args.end)
    return None


async def run_report(args: argparse.Namespace):
    reports = PipelineReports()
    date_range = _date_range(args)

    if args.report == "pipelines":
        return await reports.get_pipelines(args.tenant)
    if args.report == "stages":
        return await reports.get_pipeline_stages(args.tenant, args.pipeline)
    if args.report == "kpis":
        return await reports.get_kpis(args.tenant, args.pipeline)
    if args.report == "pipeline":
        return await reports.get_full_pipeline_metrics(args.tenant, args.pipeline, date_range)
    if args.report == "seguimiento":
        return await reports.get_seguimiento_deals(args.tenant, args.pipeline, date_range)
    if args.report == "pedidos":
        return await reports.get_pedidos_deals(args.tenant, args.pipeline, date_range)
    if args.report == "report":
        return await reports.get_report_data(args.tenant, args.pipeline, date_range)
    if args.report == "items":
        return await reports.get_items_report(args.tenant, args.pipeline, date_range)
    if args.report == "prices":
        return await reports.analyze_deals_price(args.tenant, args.pipeline)
    return await reports.get_daily_report_data(args.tenant, args.pipeline, args.date)


def _to_json(result):
    if isinstance(result, list):
        return [item.model_dump(mode="json") for item in result]
    return result.model_dump(mode="json")


def main():
    parser = argparse.ArgumentParser(description="HubSpot pipeline analytics reports")
    parser.add_argument("report", choices=REPORTS, help="Report to build")
    parser.add_argument("--tenant", default="default", help="Tenant id (selects the HubSpot token)")
    parser.add_argument("--pipeline", default="default", help="HubSpot deal pipeline id")
    parser.add_argument("--start", help="Inclusive createdate lower bound (ISO-8601)")
    parser.add_argument("--end", help="Inclusive createdate upper bound (ISO-8601)")
    parser.add_argument("--date", help="Day for the daily report (YYYY-MM-DD, default today)")
    parser.add_argument("--output", help="Write JSON to this file instead of stdout")
    args = parser.parse_args()

    logger.info("Building '%s' for tenant=%s pipeline=%s", args.report, args.tenant, args.pipeline)
    try:
        result = asyncio.run(run_report(args))
    except ReportError as e:
        logger.error(e.user_message)
        sys.exit(1)

    data = _to_json(result)
    if args.output:
        if not atomic_write_json(data, args.output):
            sys.exit(1)
        logger.info("Wrote %s", args.output)
    else:
        print(json.dumps(data, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
