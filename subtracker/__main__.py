"""Entry point для запуска через python -m subtracker.

Запускает uvicorn сервер с FastAPI приложением.
Планировщик сверки подписок запускается вместе с приложением.

Использование:
    python -m subtracker              # Production mode (без hot-reload)
    python -m subtracker --dev        # Development mode (с hot-reload)
    python -m subtracker --help       # Показать справку
"""

import argparse

import uvicorn


def main() -> None:
    """Запустить приложение через uvicorn."""
    parser = argparse.ArgumentParser(
        description="Subtracker — учёт подписок и напоминания о продлении",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры:
    python -m subtracker              # Production mode
    python -m subtracker --dev        # Development mode с hot-reload
    python -m subtracker --port 3000  # Указать кастомный порт
        """,
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Включить hot-reload для разработки",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Хост для сервера (по умолчанию: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Порт для сервера (по умолчанию: 8000)",
    )
    args = parser.parse_args()

    uvicorn.run(
        "subtracker.main:app",
        host=args.host,
        port=args.port,
        reload=args.dev,
        reload_includes=["subtracker/**/*.py"] if args.dev else None,
        reload_excludes=[".venv/**", "data/**", "tests/**"] if args.dev else None,
    )


if __name__ == "__main__":
    main()
