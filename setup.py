from setuptools import find_packages, setup

VERSION = "0.1"

setup(
    name="mc-chat-bridge",
    version=VERSION,
    description="Relay Minecraft server chat and events to a chat room, and chat room commands back over RCON",
    author="Robb Manes",
    author_email="robbmanes@protonmail.com",
    entry_points={
        "console_scripts": [
            "mc-chat-bridge = mc_chat_bridge.main:run_bridge",
        ]
    },
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "environs<15",
        "fastapi",
        "httpx",
        "discord.py",
        "python-dotenv",
        "uvicorn>=0.29",
        "websockets>=14.0",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
