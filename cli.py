import argparse
import logging
import shutil
import threading

from db import RoutineExerciseRepository
from playback import WorkoutPlaybackController, SESSION_COMPLETE, NotificationSink
from rest_api import StudioAPI
from timer_service import IntervalTimerSource
from tools import TimeTools


def export_routine(db_path: str, routine_id: int, fmt: str, output_dir: str = ".") -> str:
    repo = RoutineExerciseRepository(db_path)
    if fmt == "csv":
        data = repo.export_routine_csv(routine_id)
    else:
        data = repo.export_routine_json(routine_id)
    out_path = f"{output_dir}/routine_{routine_id}.{fmt}"
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(data)
    return out_path


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str) -> int | None:
    """Populate the database with a demo routine if empty."""
    api = StudioAPI(db_path=db_path, yaml_path=yaml_path)
    if api.routines.fetch_all_routines():
        print("Database already contains routines")
        return None
    rid = api.routines.create("Morning Circuit", "Short full-body warm up")
    for name, category, duration in [
        ("Jumping Jacks", "cardio", 45),
        ("Bodyweight Squat", "strength", 60),
        ("Plank", "strength", 30),
        ("Hamstring Stretch", "flexibility", None),
    ]:
        eid = api.exercises.add(name, category)
        api.routine_exercises.add(rid, eid, duration)
    print("Demo data inserted")
    return rid


class _ConsoleSink(NotificationSink):
    def __init__(self, done: threading.Event) -> None:
        self.done = done

    def notify(self, message: str) -> None:
        print(message)
        if message == SESSION_COMPLETE:
            self.done.set()


def present(db_path: str, yaml_path: str, routine_id: int) -> None:
    """Play a routine in the terminal until it completes."""
    api = StudioAPI(db_path=db_path, yaml_path=yaml_path)
    routine = api.routines.fetch_detail(routine_id)
    steps = api.presentations.load_steps(routine_id)
    if not steps:
        print("Routine has no exercises")
        return
    done = threading.Event()

    def show(state: dict) -> None:
        step = controller.current_step
        print(
            f"[{state['current_index'] + 1}/{state['sequence_length']}] "
            f"{step.name if step else '-'} "
            f"{TimeTools.format_clock(state['time_remaining_seconds'])}",
            flush=True,
        )

    controller = WorkoutPlaybackController(
        IntervalTimerSource(),
        notifier=_ConsoleSink(done),
        default_duration=api.settings.get_int("default_duration_seconds", 60),
        tick_interval=api.settings.get_float("tick_interval_seconds", 1.0),
    )
    controller.load_sequence(steps)
    controller.on_change = show
    print(f"Presenting {routine[1]}")
    controller.play()
    try:
        done.wait()
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop()


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn

    api = StudioAPI(db_path=db_path, yaml_path=yaml_path)
    try:
        uvicorn.run(api.app, host=host, port=port)
    finally:
        api.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="studio.db")
    exp.add_argument("--routine", type=int, required=True)
    exp.add_argument("--fmt", choices=["csv", "json"], default="csv")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="studio.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="studio.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="studio.db")
    demo.add_argument("--yaml", default="settings.yaml")

    pres = sub.add_parser("present")
    pres.add_argument("--routine", type=int, required=True)
    pres.add_argument("--db", default="studio.db")
    pres.add_argument("--yaml", default="settings.yaml")

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="studio.db")
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())

    if args.cmd == "export":
        print(export_routine(args.db, args.routine, args.fmt, args.out))
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "present":
        present(args.db, args.yaml, args.routine)
    elif args.cmd == "serve":
        serve(args.db, args.yaml, args.host, args.port)


if __name__ == "__main__":
    main()
