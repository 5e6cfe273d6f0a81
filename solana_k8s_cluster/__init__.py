# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""solana_k8s_cluster - Solana validator test cluster deployment on Kubernetes."""

from __future__ import annotations

import io
import logging
import threading
from contextlib import contextmanager

from rich.console import Console

__version__ = "0.1.0"


class ThreadAwareConsole:
    """Console proxy that routes to thread-local buffers when set."""

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    def _target(self) -> Console:
        return getattr(self._local, "console", self._real)

    def __getattr__(self, name: str):
        return getattr(self._target(), name)

    # Dunder lookups bypass __getattr__; rich's Live and Progress enter the
    # console with ``with console:``.
    def __enter__(self) -> Console:
        return self._target().__enter__()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._target().__exit__(exc_type, exc_value, traceback)

    @contextmanager
    def buffered(self):
        """Buffer all console output for the current thread.

        Validator workers use this so each node's progress lines are printed
        as one block instead of interleaving with their siblings.
        """
        buf = io.StringIO()
        self._local.console = Console(file=buf, stderr=False, force_terminal=False, width=120)
        try:
            yield buf
        finally:
            del self._local.console


console = ThreadAwareConsole(Console(stderr=True))
logger = logging.getLogger("solana_k8s_cluster")
