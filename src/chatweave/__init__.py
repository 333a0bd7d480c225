"""
The main entrypoint for the Chatweave package.

Chatweave turns an editable chat history into multi-turn requests for a
completion backend and streams the reply back, keeping the model's thoughts
and its answer in separate messages. The ``Chatweave`` class serves that
engine through a Dash UI whose polling interval drives the foreground.
"""

import threading
from typing import Optional

from dash import Dash

from . import layout, llm
from .config import Settings, configure_logging, get_settings
from .orchestrator import CompletionOrchestrator
from .sessions import Sessions

__all__ = ["Chatweave"]


class Chatweave(Dash):
    """
    The Dash application serving chatweave conversations.

    The constructor uses concrete defaults (Gemini backend, Bootstrap layout,
    settings from the environment) while letting each collaborator be
    injected.
    """

    def __init__(
        self,
        layout: Optional["layout.Layout"] = None,
        llm: Optional["llm.LLM"] = None,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> None:
        """
        Initialize the application.

        Parameters
        ----------
        layout : layout.Layout, optional
            Layout builder for the Dash component tree.
            Defaults to layout.Bootstrap().
        llm : llm.LLM, optional
            Completion backend. Defaults to llm.Gemini() configured from
            ``settings``.
        settings : Settings, optional
            Runtime configuration. Defaults to ``get_settings()``, which
            reads the environment and ``.env``.
        **kwargs
            Additional arguments passed to the Dash constructor.

        Raises
        ------
        ValueError
            If the layout is missing component IDs the callbacks need.

        Examples
        --------
        >>> app = Chatweave()
        >>> app = Chatweave(llm=llm.Echo(delay=0.05))
        """
        self.settings = settings if settings is not None else get_settings()
        configure_logging(self.settings.log_level)

        layout_module = globals()["layout"]
        llm_module = globals()["llm"]

        self.layout_builder = layout if layout is not None else layout_module.Bootstrap()
        self.llm = (
            llm
            if llm is not None
            else llm_module.Gemini(
                api_key=self.settings.api_key,
                default_model=self.settings.model,
                include_thoughts=self.settings.include_thoughts,
            )
        )

        kwargs.setdefault("external_stylesheets", [])
        kwargs["external_stylesheets"].extend(self.layout_builder.get_external_stylesheets())
        kwargs.setdefault("external_scripts", [])
        kwargs["external_scripts"].extend(self.layout_builder.get_external_scripts())
        kwargs.setdefault("title", "Chatweave")

        super().__init__(**kwargs)

        self.lock = threading.RLock()
        self.orchestrator = CompletionOrchestrator(self.llm, self.settings)
        self.sessions = Sessions(self.orchestrator)

        self.models = list(self.settings.available_models)
        if self.llm.model not in self.models:
            self.models.insert(0, self.llm.model)

        self.layout = self.layout_builder.build_layout(
            self.settings.ui_poll_interval_ms, self.models
        )
        self._validate_layout()
        self._register_callbacks()

    def _validate_layout(self) -> None:
        found = set()
        stack = [self.layout]
        while stack:
            component = stack.pop()
            component_id = getattr(component, "id", None)
            if isinstance(component_id, str):
                found.add(component_id)
            children = getattr(component, "children", None)
            if isinstance(children, (list, tuple)):
                stack.extend(children)
            elif children is not None and hasattr(children, "to_plotly_json"):
                stack.append(children)
        missing = globals()["layout"].REQUIRED_COMPONENT_IDS - found
        if missing:
            raise ValueError(f"Layout is missing required component IDs: {sorted(missing)}")

    def _register_callbacks(self) -> None:
        """Registers all the callbacks that drive the chat state."""
        from .callbacks import register_callbacks

        register_callbacks(self)
