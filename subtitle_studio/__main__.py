"""Package entry point for ``python -m subtitle_studio``.

WHY: Users run the headless pipeline as ``python -m subtitle_studio
input.mp4`` or the HTTP API as ``python -m subtitle_studio --serve``.

HOW: Checks sys.argv for the ``--serve`` flag. If present, starts the
FastAPI app under uvicorn. Otherwise, delegates to the CLI's main().
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from subtitle_studio.server.app import run_api
        run_api()
    else:
        from subtitle_studio.cli import main
        main()
