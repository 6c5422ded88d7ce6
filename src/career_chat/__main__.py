"""Run the chat API with uvicorn: ``python -m career_chat``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "career_chat.api.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
