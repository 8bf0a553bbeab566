"""Create a local .env from .env.template with fresh secrets.

Fills JWT_SECRET and a Fernet TOKEN_ENCRYPTION_KEY (used to encrypt stored
Meta access tokens). Existing .env files are left untouched.
"""

import os
import secrets

from cryptography.fernet import Fernet

TEMPLATE_PATH = ".env.template"
ENV_PATH = ".env"


def render_env(template: str, jwt_secret: str, fernet_key: str) -> str:
    lines = []
    for line in template.splitlines():
        if line.startswith("JWT_SECRET="):
            lines.append(f"JWT_SECRET={jwt_secret}")
        elif line.startswith("TOKEN_ENCRYPTION_KEY="):
            lines.append(f"TOKEN_ENCRYPTION_KEY={fernet_key}")
        else:
            lines.append(line)
    return "\n".join(lines) + "\n"


def main():
    if os.path.exists(ENV_PATH):
        print(f"{ENV_PATH} already exists, not overwriting.")
        return
    if not os.path.exists(TEMPLATE_PATH):
        print(f"Error: {TEMPLATE_PATH} not found. Please ensure it exists.")
        return

    jwt_secret = secrets.token_urlsafe(32)
    fernet_key = Fernet.generate_key().decode()

    with open(TEMPLATE_PATH, "r") as f:
        content = render_env(f.read(), jwt_secret, fernet_key)
    with open(ENV_PATH, "w") as f:
        f.write(content)

    print(f"Generated JWT_SECRET and TOKEN_ENCRYPTION_KEY, wrote {ENV_PATH}")


if __name__ == "__main__":
    main()
