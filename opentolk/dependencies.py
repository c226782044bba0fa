from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status

from opentolk.config import Settings, settings as app_settings
from opentolk.connectors.google_gmail import credentials_from_file
from opentolk.connectors.llm import BaseLLMClient, create_llm_client
from opentolk.core.classifier import IntentClassifier
from opentolk.core.dispatcher import OutputDispatcher
from opentolk.core.executor import Executor
from opentolk.core.loader import load_plugins
from opentolk.core.policy import PermissionStore
from opentolk.core.registry import PluginRegistry, SettingsStore
from opentolk.core.router import PluginRouter
from opentolk.core.session_manager import SessionManager
from opentolk.core.sinks import DeliverySink
from opentolk.schemas.result import LoadedPlugin


@dataclass
class Engine:
    """Every long-lived service, constructed once per process."""

    config: Settings
    registry: PluginRegistry
    settings_store: SettingsStore
    permissions: PermissionStore
    sessions: SessionManager
    llm: BaseLLMClient | None
    router: PluginRouter
    http_client: httpx.AsyncClient

    def executor(self, sink: DeliverySink) -> Executor:
        return Executor(
            self.registry,
            self.settings_store,
            llm=self.llm,
            sessions=self.sessions,
            permissions=self.permissions,
            sink=sink,
            gmail_credentials=credentials_from_file,
            http_client=self.http_client,
            config=self.config,
        )

    def dispatcher(self, sink: DeliverySink) -> OutputDispatcher:
        return OutputDispatcher(sink)

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_engine(
    config: Settings = app_settings,
    llm: BaseLLMClient | None = None,
    http_client: httpx.AsyncClient | None = None,
    load: bool = True,
) -> Engine:
    registry = PluginRegistry(data_dir=config.data_dir)
    if load:
        load_plugins(config.plugins_dir, registry)

    llm = llm if llm is not None else create_llm_client(config)
    return Engine(
        config=config,
        registry=registry,
        settings_store=SettingsStore(),
        permissions=PermissionStore(auto_approve=config.auto_approve_permissions),
        sessions=SessionManager(
            ttl_seconds=config.conversation_ttl_seconds,
            max_messages=config.conversation_max_messages,
        ),
        llm=llm,
        router=PluginRouter(registry, IntentClassifier(llm), enabled=config.plugins_enabled),
        http_client=http_client or httpx.AsyncClient(follow_redirects=True),
    )


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


EngineDep = Annotated[Engine, Depends(get_engine)]


def get_plugin(plugin_id: str, engine: EngineDep) -> LoadedPlugin:
    plugin = engine.registry.get(plugin_id)
    if plugin is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Plugin not found: {plugin_id}")
    return plugin
