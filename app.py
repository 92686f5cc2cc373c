from __future__ import annotations

import os

from delicious import create_app


app = create_app()


if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", "7777")))
