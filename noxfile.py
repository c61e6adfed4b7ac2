import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]

nox.options.default_venv_backend = "uv"
nox.options.sessions = ["tests", "lint"]


def sync(session: nox.Session, *extras: str) -> None:
    extra_args = [arg for extra in extras for arg in ("--extra", extra)]
    session.run_install(
        "uv",
        "sync",
        *extra_args,
        env={"UV_PROJECT_ENVIRONMENT": session.virtualenv.location},
    )


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    sync(session, "test")
    session.run(
        "pytest",
        "--cov=gqlharbor",
        "--cov-report=term-missing",
        "--cov-fail-under=85",
        *session.posargs,
    )


@nox.session(python=PYTHON_VERSIONS[-1])
def lint(session: nox.Session) -> None:
    sync(session, "test")
    session.install("ruff", "mypy", "types-PyYAML")
    session.run("ruff", "check", "src", "tests")
    session.run("ruff", "format", "--check", "src", "tests")
    session.run("mypy", "src")
