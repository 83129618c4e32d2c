import sys

from coinbot.api import create_app
from coinbot.core.log import configure_logging
from coinbot.core.settings import settings

configure_logging(settings.LOG_LEVEL)
app = create_app()

if __name__ == "__main__":
    if len(sys.argv) == 3 and sys.argv[1] == "token":
        # bearer token for a messaging transport: python main.py token whatsapp
        from coinbot.services.security import create_transport_token
        print(create_transport_token(settings, sys.argv[2]))
        sys.exit(0)

    import uvicorn
    print("服务启动：")
    print(" - 健康检查: http://127.0.0.1:8000/health")
    print(" - 命令网关: POST http://127.0.0.1:8000/api/v1/commands")
    uvicorn.run(app, host="0.0.0.0", port=8000)
