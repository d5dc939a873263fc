"""
启动后端服务: python -m worktrack
"""
import os

import uvicorn


def main():
    port = int(os.environ.get("PORT", "5000"))
    uvicorn.run("worktrack.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
