from rest_api import StudioAPI


CATALOGUE = [
    ("Jumping Jacks", "cardio", "Beginner", "Full-body warm up", None, "legs, shoulders"),
    ("High Knees", "cardio", "Beginner", "Run in place driving knees up", None, "hip flexors"),
    ("Burpee", "cardio", "Intermediate", "Squat, plank, jump", None, "full body"),
    ("Goblet Squat", "strength", "Intermediate", "Squat holding a kettlebell", "kettlebell", "quads, glutes"),
    ("Push-up", "strength", "Beginner", "Chest to floor and back", None, "chest, triceps"),
    ("Plank", "strength", "Beginner", "Hold a straight line", "mat", "core"),
    ("Single-leg Balance", "balance", "Beginner", "Stand on one leg", None, "ankles"),
    ("Child's Pose", "flexibility", "Beginner", "Kneel and reach forward", "mat", "back"),
]

ROUTINES = {
    "HIIT Express": (
        "Twenty minutes of intervals",
        [("Jumping Jacks", 45), ("Burpee", 30), ("High Knees", 45), ("Burpee", 30)],
    ),
    "Core & Stretch": (
        "Strength finisher with a cool down",
        [("Plank", 60), ("Push-up", 40), ("Single-leg Balance", 30), ("Child's Pose", None)],
    ),
}


def seed() -> None:
    api = StudioAPI()
    try:
        if api.routines.fetch_all_routines():
            print("Database already contains routines")
            return
        ids = {}
        for name, category, level, desc, equipment, muscles in CATALOGUE:
            ids[name] = api.exercises.add(
                name, category, level, desc, equipment, muscles
            )
        for routine, (desc, items) in ROUTINES.items():
            rid = api.routines.create(routine, desc)
            for name, duration in items:
                api.routine_exercises.add(rid, ids[name], duration)
        print("Seed data inserted")
    finally:
        api.close()


if __name__ == "__main__":
    seed()
