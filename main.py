"""Mock Test Attempt Engine - Command Line Interface"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
import logging

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(levelname)s: %(message)s'
)


def cmd_import_paper(args):
    """Import a question paper PDF as a test definition"""
    from core.errors import ValidationError
    from core.pdf_parser import PaperPDFParser
    from storage.json_storage import PaperStorage

    pdf_path = Path(args.pdf)
    if not pdf_path.exists():
        print(f"❌ File not found: {pdf_path}")
        return 1

    parser = PaperPDFParser()
    try:
        definition = parser.parse_pdf(
            pdf_path,
            paper_id=args.paper_id or pdf_path.stem,
            exam_type=args.exam_type,
            duration_seconds=args.duration * 60 if args.duration else None,
            title=args.title or "",
        )
    except ValidationError as e:
        print(f"❌ {e}")
        return 1

    path = PaperStorage().save_paper(definition)

    print(f"\n✅ Imported {definition.total_questions} questions into {path}")
    print(f"\n📊 Parser Statistics:")
    for key, value in parser.get_stats().items():
        print(f"   {key}: {value}")

    print("\n📚 Subjects:")
    for subject in definition.subjects:
        count = sum(1 for q in definition.questions if q.subject == subject)
        print(f"   {subject}: {count}")
    return 0


def cmd_papers(args):
    """List available papers"""
    from storage.json_storage import PaperStorage

    papers = PaperStorage().list_papers(args.exam_type)
    if not papers:
        print("No papers imported yet. Use: python main.py import-paper <pdf>")
        return 0

    print(f"\n📋 PAPERS ({len(papers)})")
    print("=" * 50)
    for p in papers:
        minutes = (p["duration_seconds"] or 0) // 60
        print(f"   [{p['exam_type']}] {p['paper_id']}: {p['total_questions']} questions, {minutes} min  {p['title']}")
    return 0


def print_report(report):
    overall = report.overall
    print(f"\n📊 ANALYSIS: {report.attempt_id} (paper {report.paper_id})")
    print("=" * 50)
    print(f"   Score: {overall.score:g} / {overall.max_score:g}")
    print(f"   Correct: {overall.correct}  Incorrect: {overall.incorrect}  Unattempted: {overall.unattempted}")
    print(f"   Accuracy: {overall.accuracy}%  Attempt rate: {overall.attempt_rate}%")
    print(f"   Time: {report.total_time_seconds}s, {report.average_time_per_question}s per question")
    if report.forced:
        print("   ⏰ Submitted automatically when time ran out")

    print(f"\n📚 By Subject:")
    for name, s in report.subjects.items():
        time_spent = f"{s.time_spent}s" if s.time_spent is not None else "not tracked"
        print(f"   {name}: {s.score:g}/{s.max_score:g}, {s.correct}/{s.total} correct, time {time_spent}")

    if report.difficulties:
        print(f"\n🎯 By Difficulty:")
        for name, d in report.difficulties.items():
            print(f"   {name}: {d.correct}/{d.total} correct, accuracy {d.accuracy}%")


def cmd_analyze(args):
    """Analyze a submitted attempt"""
    from core.errors import EngineError
    from engine.analysis_engine import AnalysisEngine, weak_subjects
    from storage.http_service import HttpAttemptService
    from storage.json_storage import AttemptStorage, PaperStorage

    async def run():
        if not args.remote:
            return await AnalysisEngine(AttemptStorage(), PaperStorage()).analyze_attempt_id(args.attempt_id)

        service = HttpAttemptService(args.remote)
        try:
            return await AnalysisEngine(service, PaperStorage()).analyze_attempt_id(args.attempt_id)
        finally:
            await service.aclose()

    try:
        report = asyncio.run(run())
    except EngineError as e:
        print(f"❌ {e}")
        return 1

    print_report(report)

    weak = weak_subjects(report)
    if weak:
        print("\n⚠️  Weak subjects:")
        for subject, accuracy in weak:
            print(f"   {subject}: {accuracy}%")
    return 0


def cmd_history(args):
    """Show the score trend across attempts"""
    from core.errors import EngineError
    from engine.analysis_engine import AnalysisEngine, compare_reports
    from storage.json_storage import AttemptStorage, PaperStorage

    attempts_store = AttemptStorage()
    engine = AnalysisEngine(attempts_store, PaperStorage())

    reports = []
    for summary in attempts_store.list_attempts(args.paper_id):
        try:
            reports.append(asyncio.run(engine.analyze_attempt_id(summary["attempt_id"])))
        except EngineError as e:
            print(f"   ⚠️  Skipping {summary['attempt_id']}: {e}")

    if not reports:
        print("No attempts found")
        return 0

    for r in reports:
        print(f"   {r.attempt_id}: {r.score:g} ({r.overall.accuracy}%)")

    trends = compare_reports(reports)
    if "improvement" in trends:
        print(f"\n📈 Improvement: score {trends['improvement']['score']:+g}, "
              f"accuracy {trends['improvement']['accuracy']:+}%")
    return 0


def cmd_serve(args):
    """Start web interface"""
    import subprocess

    print("🚀 Starting Mock Test Engine...")
    print(f"   Open http://localhost:{args.port} in your browser")

    subprocess.run([
        sys.executable, "-m", "streamlit", "run",
        str(Path(__file__).parent / "ui" / "app.py"),
        "--server.port", str(args.port)
    ])
    return 0


def build_parser() -> argparse.ArgumentParser:
    from config.settings import API_CONFIG

    parser = argparse.ArgumentParser(description="Mock Test Attempt & Analysis Engine")
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    import_parser = subparsers.add_parser('import-paper', help='Import a question paper PDF')
    import_parser.add_argument('pdf', help='Path to PDF file')
    import_parser.add_argument('--exam-type', '-e', default='general', help='Exam type')
    import_parser.add_argument('--paper-id', '-p', help='Paper id (defaults to file name)')
    import_parser.add_argument('--duration', '-d', type=int, help='Duration in minutes')
    import_parser.add_argument('--title', '-t', help='Paper title')
    import_parser.set_defaults(func=cmd_import_paper)

    papers_parser = subparsers.add_parser('papers', help='List papers')
    papers_parser.add_argument('--exam-type', '-e', help='Only this exam type')
    papers_parser.set_defaults(func=cmd_papers)

    analyze_parser = subparsers.add_parser('analyze', help='Analyze a submitted attempt')
    analyze_parser.add_argument('attempt_id', help='Attempt id')
    analyze_parser.add_argument('--remote', nargs='?', const=API_CONFIG.base_url,
                                help='Fetch the attempt from a test service (default: EXAM_API_URL)')
    analyze_parser.set_defaults(func=cmd_analyze)

    history_parser = subparsers.add_parser('history', help='Score trend across attempts')
    history_parser.add_argument('--paper-id', '-p', help='Only attempts on this paper')
    history_parser.set_defaults(func=cmd_history)

    serve_parser = subparsers.add_parser('serve', help='Start web UI')
    serve_parser.add_argument('--port', type=int, default=8501)
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command:
        return args.func(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
