"""Procurement Orchestrator - chat and deep research from the command line."""

import argparse
import asyncio

from app.agents import deep_research
from app.agents.orchestrator import ChatOrchestrator
from app.models.deep_research import CommandCenterProgress, JobPhase

_last_stage: list[str] = []


def print_progress(snapshot: CommandCenterProgress) -> None:
    stage = snapshot.stage.value
    if not _last_stage or _last_stage[-1] != stage:
        _last_stage.append(stage)
        print(f"\n[~] Stage: {stage}")
    active = [p.label for p in snapshot.phases if p.status.value == "active"]
    if active:
        print(f"  [+] {', '.join(active)} ({snapshot.total_sources} sources, {snapshot.elapsed_ms}ms)")


async def run_chat(query: str, *, web: bool, hybrid: bool, reasoning: bool):
    print(f"Query: {query}")
    print("-" * 50)
    orchestrator = ChatOrchestrator(session_id="cli")
    response = await orchestrator.respond(
        query,
        mode="reasoning" if reasoning else "fast",
        web_search=web,
        hybrid=hybrid,
        on_milestone=lambda m: print(f"  [{m.timestamp}ms] {m.label}"),
    )
    print(f"\n[*] Provider: {response.provider}  Type: {response.response_type.value}")
    if response.widget:
        print(f"[*] Widget: {response.widget.type}")
    print(f"\n{response.content}")
    if response.sources.citations:
        print("\nSources:")
        for cid, source in response.sources.citations.items():
            if not cid.isdigit():
                print(f"  [{cid}] {source.name} {source.url or ''}")
    if response.suggestions:
        print("\nTry next:")
        for suggestion in response.suggestions:
            print(f"  - {suggestion.text}")


async def run_deep(query: str, *, study_type: str, credits: int):
    job = deep_research.build_job(query, study_type, credits_available=credits)
    print(f"Deep research: {job.query} ({job.study_type.value}, {job.credits_required} credits)")
    print("-" * 50)
    if job.credits_available >= job.credits_required:
        await deep_research.start_intake(job)
        if job.intake and not job.intake.can_skip:
            print("[!] Intake has unanswered questions; running with defaults.")
    job = await deep_research.run_deep_research(job, print_progress)

    if job.phase is not JobPhase.COMPLETE or job.report is None:
        error = job.error
        print(f"\n[!] {error.code}: {error.message}" if error else "\n[!] Research failed")
        return

    report = job.report
    metrics = report.quality_metrics
    print(f"\n[*] Research Complete! Completeness {metrics.completeness_score}%, {metrics.total_citations} citations")
    print(f"\n{'=' * 50}\n{report.title}\n{'=' * 50}")
    for section in report.sections:
        print(f"\n## {section.title}\n\n{section.content}")
    print("\nReferences:")
    for cid in report.references:
        source = report.citations[cid].source
        print(f"  [{cid}] {source.name} {source.url or ''}")
    for warning in metrics.warnings:
        print(f"[!] {warning}")


def main():
    parser = argparse.ArgumentParser(description="Procurement Orchestrator")
    parser.add_argument("--query", "-q", required=True, help="User message or research topic")
    parser.add_argument("--deep", action="store_true", help="Run a deep research study")
    parser.add_argument("--study-type", default="market-analysis", help="Deep research study type")
    parser.add_argument("--credits", type=int, default=1000, help="Credits available for deep research")
    parser.add_argument("--web", action="store_true", help="Enable web search")
    parser.add_argument("--hybrid", action="store_true", help="Merge internal and web findings")
    parser.add_argument("--reasoning", action="store_true", help="Use reasoning mode")

    args = parser.parse_args()

    if args.deep:
        asyncio.run(run_deep(args.query, study_type=args.study_type, credits=args.credits))
    else:
        asyncio.run(run_chat(args.query, web=args.web, hybrid=args.hybrid, reasoning=args.reasoning))


if __name__ == "__main__":
    main()
