"""Project stack detection from dependency manifests.

Reads the root ``package.json``, ``requirements*.txt`` and ``pyproject.toml``
of a scanned corpus and infers the web framework, database and auth
provider, plus HIPAA recommendations specific to that stack.
"""

import json
import logging
import re
import tomllib
from typing import Iterable, Optional

from .models import SourceFile, StackInfo

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Checked in order; more specific entries come first
FRAMEWORKS: list[tuple[str, str, tuple[str, ...], tuple[str, ...]]] = [
    # (id, display name, packages, config files that raise confidence)
    ("nextjs", "Next.js", ("next",), ("next.config.js", "next.config.mjs", "next.config.ts")),
    ("nuxt", "Nuxt", ("nuxt",), ("nuxt.config.js", "nuxt.config.ts")),
    ("nestjs", "NestJS", ("@nestjs/core",), ("nest-cli.json",)),
    ("angular", "Angular", ("@angular/core",), ("angular.json",)),
    ("fastify", "Fastify", ("fastify",), ()),
    ("hono", "Hono", ("hono",), ()),
    ("koa", "Koa", ("koa",), ()),
    ("express", "Express.js", ("express",), ()),
    ("vue", "Vue.js", ("vue",), ()),
    ("react", "React", ("react", "react-dom"), ()),
    ("django", "Django", ("django",), ("manage.py",)),
    ("fastapi", "FastAPI", ("fastapi",), ()),
    ("flask", "Flask", ("flask",), ()),
]

DATABASES: list[tuple[str, str, tuple[str, ...], tuple[str, ...]]] = [
    # (id, display name, packages, environment variables that raise confidence)
    ("supabase", "Supabase",
     ("@supabase/supabase-js", "@supabase/ssr", "@supabase/auth-helpers-nextjs", "supabase"),
     ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "SUPABASE_ANON_KEY")),
    ("firebase", "Firebase/Firestore", ("firebase", "firebase-admin", "@firebase/firestore"),
     ("FIREBASE_API_KEY", "NEXT_PUBLIC_FIREBASE")),
    ("prisma", "Prisma ORM", ("@prisma/client", "prisma"), ()),
    ("drizzle", "Drizzle ORM", ("drizzle-orm",), ()),
    ("mongodb", "MongoDB", ("mongodb", "mongoose", "pymongo", "motor"), ("MONGODB_URI", "MONGO_URL")),
    ("postgresql", "PostgreSQL",
     ("pg", "postgres", "@vercel/postgres", "node-postgres", "psycopg2", "psycopg2-binary", "psycopg", "asyncpg"),
     ("DATABASE_URL", "POSTGRES_URL", "PG_CONNECTION")),
    ("mysql", "MySQL", ("mysql", "mysql2", "pymysql", "mysqlclient"), ("MYSQL_URL", "MYSQL_HOST")),
]

AUTH_PROVIDERS: list[tuple[str, str, tuple[str, ...], tuple[str, ...]]] = [
    # (id, display name, packages, config files that raise confidence)
    ("clerk", "Clerk", ("@clerk/nextjs", "@clerk/clerk-react"), ()),
    ("auth0", "Auth0", ("@auth0/nextjs-auth0", "@auth0/auth0-react", "auth0", "auth0-python"), ()),
    ("nextauth", "NextAuth.js", ("next-auth", "@auth/core"),
     ("auth.ts", "auth.js", "[...nextauth].ts", "[...nextauth].js")),
    ("supabase-auth", "Supabase Auth",
     ("@supabase/auth-helpers-nextjs", "@supabase/auth-helpers-react", "@supabase/ssr"), ()),
    ("firebase-auth", "Firebase Auth", ("firebase/auth", "@firebase/auth"), ()),
    ("lucia", "Lucia", ("lucia", "lucia-auth"), ()),
    ("passport", "Passport.js", ("passport", "passport-local", "passport-jwt"), ()),
    ("django-allauth", "django-allauth", ("django-allauth",), ()),
    ("flask-login", "Flask-Login", ("flask-login",), ()),
]

_ENV_SEARCH_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".env", ".py"}
_ENV_SEARCH_LIMIT = 50
_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_REQUIREMENTS_FILE_RE = re.compile(r"^requirements[\w.-]*\.txt$")


def _requirement_name(spec: str) -> Optional[str]:
    match = _REQUIREMENT_NAME_RE.match(spec)
    return match.group(1).lower() if match else None


def parse_package_json(content: str) -> dict[str, str]:
    """Dependencies and devDependencies of a package.json, name -> version."""
    try:
        pkg = json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring unparseable package.json: {e}")
        return {}
    if not isinstance(pkg, dict):
        return {}

    deps: dict[str, str] = {}
    for key in ("dependencies", "devDependencies"):
        section = pkg.get(key)
        if isinstance(section, dict):
            for name, version in section.items():
                deps.setdefault(name, str(version))
    return deps


def parse_requirements(content: str) -> dict[str, str]:
    """Package names from a pip requirements file, name -> version specifier."""
    deps: dict[str, str] = {}
    for line in content.split("\n"):
        line = line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        if "://" in line and " @ " not in line:
            continue
        name = _requirement_name(line)
        if name:
            deps.setdefault(name, line[len(name):].split(";", 1)[0].strip())
    return deps


def parse_pyproject(content: str) -> dict[str, str]:
    """PEP 621 and Poetry dependencies of a pyproject.toml, name -> version specifier."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Ignoring unparseable pyproject.toml: {e}")
        return {}

    specs: list[str] = list(data.get("project", {}).get("dependencies", []))
    for group in data.get("project", {}).get("optional-dependencies", {}).values():
        specs.extend(group)

    deps = parse_requirements("\n".join(s for s in specs if isinstance(s, str)))

    poetry = data.get("tool", {}).get("poetry", {})
    for name, version in poetry.get("dependencies", {}).items():
        if name.lower() != "python":
            deps.setdefault(name.lower(), version if isinstance(version, str) else "")
    return deps


def collect_dependencies(corpus: Iterable[SourceFile]) -> dict[str, str]:
    """Merge the dependencies declared by every root-level manifest in the corpus."""
    deps: dict[str, str] = {}
    for source in corpus:
        path = source.relative_path
        if "/" in path:
            continue
        if path == "package.json":
            found = parse_package_json(source.content)
        elif path == "pyproject.toml":
            found = parse_pyproject(source.content)
        elif _REQUIREMENTS_FILE_RE.match(path):
            found = parse_requirements(source.content)
        else:
            continue
        for name, version in found.items():
            deps.setdefault(name, version)
    return deps


def has_dependency(deps: Iterable[str], package: str) -> bool:
    """Exact match, or a scoped sub-path such as 'firebase/auth' of 'firebase'."""
    package = package.lower()
    return any(d.lower() == package or d.lower().startswith(package + "/") for d in deps)


def _has_file(corpus: list[SourceFile], names: tuple[str, ...]) -> bool:
    return any(source.name in names for source in corpus)


def _mentions_env_var(corpus: list[SourceFile], env_vars: tuple[str, ...]) -> bool:
    pattern = re.compile("|".join(re.escape(v) for v in env_vars))
    candidates = [s for s in corpus if s.extension in _ENV_SEARCH_EXTENSIONS][:_ENV_SEARCH_LIMIT]
    return any(pattern.search(s.content) for s in candidates)


def stack_recommendations(framework: str, database: str, auth: str) -> list[str]:
    """HIPAA guidance tailored to the detected stack, general advice last."""
    recommendations: list[str] = []

    if framework == "nextjs":
        recommendations.append("Use Server Components for PHI data to prevent client exposure")
        recommendations.append("Implement middleware.ts for route protection")
    elif framework == "express":
        recommendations.append("Use express-session with Redis for HIPAA-compliant sessions")
        recommendations.append("Implement PHI access logging middleware")
    elif framework in ("django", "flask", "fastapi"):
        recommendations.append("Enforce authentication on every view or route that returns PHI")
        recommendations.append("Log PHI access from middleware rather than individual handlers")

    if database == "supabase":
        recommendations.append("Enable Row Level Security (RLS) on all tables containing PHI")
        recommendations.append("Use Supabase server client for PHI operations")
        recommendations.append("Configure database triggers for audit logging")
    elif database == "firebase":
        recommendations.append("Configure Firestore Security Rules for PHI access control")
        recommendations.append("Use Firebase Admin SDK server-side for PHI operations")
    elif database in ("postgresql", "mysql"):
        recommendations.append("Always use parameterized queries to prevent SQL injection")
        recommendations.append("Enable TLS for database connections")

    if auth == "supabase-auth":
        recommendations.append("Configure 15-minute session timeout for HIPAA compliance")
        recommendations.append("Use Supabase Auth middleware for route protection")
    elif auth == "nextauth":
        recommendations.append("Set JWT maxAge to 15 minutes for HIPAA compliance")
        recommendations.append("Implement signIn/signOut audit events")

    recommendations.append("Never log PHI to console in production")
    recommendations.append("Use environment variables for all credentials")
    recommendations.append("Implement structured audit logging for all PHI access")
    return recommendations


def detect_stack(corpus: list[SourceFile]) -> StackInfo:
    """Infer the project's framework, database and auth provider.

    Each dimension takes the first table entry with a declared package.
    A matching config file (framework, auth) or environment variable
    reference (database) raises the confidence of that dimension.
    """
    deps = collect_dependencies(corpus)
    if not deps:
        return StackInfo(recommendations=stack_recommendations(UNKNOWN, UNKNOWN, UNKNOWN))

    detected: dict[str, tuple[str, str]] = {}
    confidence: dict[str, float] = {"framework": 0.0, "database": 0.0, "auth": 0.0}
    versions: dict[str, str] = {}

    for dimension, table, base, boosted in (
        ("framework", FRAMEWORKS, 0.7, 0.95),
        ("database", DATABASES, 0.8, 0.95),
        ("auth", AUTH_PROVIDERS, 0.8, 0.95),
    ):
        for ident, display, packages, hints in table:
            if not any(has_dependency(deps, p) for p in packages):
                continue
            if dimension == "database":
                boost = bool(hints) and _mentions_env_var(corpus, hints)
            else:
                boost = _has_file(corpus, hints)
            detected[dimension] = (ident, display)
            confidence[dimension] = boosted if boost else base
            declared = next((deps[p] for p in packages if p in deps), "")
            if declared:
                versions[dimension] = declared
            break

    # Supabase and Firebase bundle their own auth
    if "auth" not in detected:
        if any("supabase" in d for d in deps):
            detected["auth"] = ("supabase-auth", "Supabase Auth")
            confidence["auth"] = 0.6
        elif any("firebase" in d for d in deps):
            detected["auth"] = ("firebase-auth", "Firebase Auth")
            confidence["auth"] = 0.6

    framework, framework_display = detected.get("framework", (UNKNOWN, "Unknown"))
    database, database_display = detected.get("database", (UNKNOWN, "Unknown"))
    auth, auth_display = detected.get("auth", (UNKNOWN, "Unknown"))
    logger.debug(f"Detected stack: framework={framework} database={database} auth={auth}")

    return StackInfo(
        framework=framework,
        database=database,
        auth=auth,
        framework_display=framework_display,
        database_display=database_display,
        auth_display=auth_display,
        dependencies=sorted(deps),
        confidence=confidence,
        versions=versions,
        recommendations=stack_recommendations(framework, database, auth),
    )
