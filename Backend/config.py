# config.py
import os, json
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


class Config:
    # ---- Quiz storage ----
    # "firestore" in every deployed environment; "memory" for local runs
    QUIZ_STORE_BACKEND = os.getenv("QUIZ_STORE_BACKEND", "firestore")

    # ---- Daily quiz rules ----
    # IANA zone that defines the quiz calendar day
    QUIZ_TIMEZONE = os.getenv("QUIZ_TIMEZONE", "UTC")
    # 0 disables the per-day attempt limit
    QUIZ_MAX_ATTEMPTS = _env_int("QUIZ_MAX_ATTEMPTS", 10)

    # ---- Process-local sessions ----
    GUEST_SESSION_TTL_SECONDS = _env_int("GUEST_SESSION_TTL_SECONDS", 48 * 3600)
    PRACTICE_SESSION_TTL_SECONDS = _env_int("PRACTICE_SESSION_TTL_SECONDS", 3600)
    SESSION_CACHE_MAXSIZE = _env_int("SESSION_CACHE_MAXSIZE", 10000)

    # ---- Leaderboard ----
    LEADERBOARD_DEFAULT_LIMIT = _env_int("LEADERBOARD_DEFAULT_LIMIT", 50)
    LEADERBOARD_MAX_LIMIT = _env_int("LEADERBOARD_MAX_LIMIT", 200)

    # ---- Server ----
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    @staticmethod
    def _resolve_firebase_cred_path() -> str | None:
        """
        Tries multiple ways to get a valid credential:
          1) FIREBASE_SERVICE_ACCOUNT_JSON (env contains the full JSON blob)
          2) GOOGLE_APPLICATION_CREDENTIALS (absolute or relative file path)
             - If not found, try <Backend>/firebase/credentials/<basename>
          3) First *.json found under <Backend>/firebase/credentials
        Returns a string path if a file exists, or None if using the JSON blob.
        Raises on total failure.
        """
        json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        if json_blob:
            try:
                json.loads(json_blob)
                return None
            except Exception as e:
                raise RuntimeError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {e}") from e

        p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        repo_root = Path(__file__).resolve().parent
        if p:
            p = os.path.expanduser(os.path.expandvars(p.strip().strip('"').strip("'")))
            path = Path(p)
            if path.exists():
                return str(path)

            fallback = repo_root / "firebase" / "credentials" / path.name
            if fallback.exists():
                return str(fallback)

            raise FileNotFoundError(
                "Firebase credential file not found. Tried:\n"
                f" - {path}\n - {fallback}\n"
                "Set FIREBASE_SERVICE_ACCOUNT_JSON or GOOGLE_APPLICATION_CREDENTIALS."
            )

        cred_dir = repo_root / "firebase" / "credentials"
        if cred_dir.exists():
            matches = sorted(cred_dir.glob("*.json"))
            if matches:
                return str(matches[0])

        raise FileNotFoundError(
            "No Firebase credentials found. Provide FIREBASE_SERVICE_ACCOUNT_JSON, "
            "or set GOOGLE_APPLICATION_CREDENTIALS, or put a JSON in firebase/credentials/."
        )

    @classmethod
    def firebase_credential(cls):
        """
        Certificate for firebase_admin.initialize_app, or None to use the
        attached service account (Cloud Run default credentials).
        """
        from firebase_admin import credentials

        try:
            path = cls._resolve_firebase_cred_path()
        except FileNotFoundError:
            if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
                raise
            return None
        if path is None:
            return credentials.Certificate(json.loads(os.environ["FIREBASE_SERVICE_ACCOUNT_JSON"]))
        return credentials.Certificate(path)
