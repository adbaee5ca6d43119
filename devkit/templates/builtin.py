"""Built-in plugin templates."""

from devkit.templates.catalog import PluginTemplate, TemplateVariable

COMMON_VARIABLES = [
    TemplateVariable(name="name", required=True, description="Plugin name (lowercase, digits, - and _)"),
    TemplateVariable(name="author", default="Anonymous", description="Plugin author"),
    TemplateVariable(name="description", default="A plugin for the game panel", description="Short description"),
    TemplateVariable(name="version", default="1.0.0", description="Initial version"),
]

PYTEST_INI = """[pytest]
testpaths = tests
pythonpath = .
"""

REQUIREMENTS_DEV = """plugin-devkit
pytest
"""

LIFECYCLE_TEST = '''"""Lifecycle tests for {{ name }}."""

import asyncio

from devkit.testing import MockRuntime, run_plugin_lifecycle
from plugin import {{ className }}


def make_plugin():
    runtime = MockRuntime("{{ name }}")
    context = runtime.create_context(version="{{ version }}")
    return {{ className }}(context), runtime


def test_plugin_identity():
    plugin, _ = make_plugin()
    assert plugin.name == "{{ name }}"
    assert plugin.version == "{{ version }}"


def test_lifecycle_hooks_complete():
    plugin, runtime = make_plugin()
    asyncio.run(run_plugin_lifecycle(plugin))
    assert runtime.logger.has_log("info", "enabled")
'''

# ---------------------------------------------------------------------------
# basic
# ---------------------------------------------------------------------------

BASIC_MANIFEST = """name: {{ name }}
version: {{ version }}
author: {{ authorYaml }}
description: {{ descriptionYaml }}
permissions:
  read: true
  routes: true
apis:
  - path: /{{ name }}/hello
    method: GET
    handler: hello
    description: Returns a greeting
"""

BASIC_PLUGIN = '''"""{{ description }}"""

from devkit import PluginBase


class {{ className }}(PluginBase):
    async def on_load(self):
        self.logger.info("{{ name }} loaded")

    async def on_enable(self):
        self.context.register_route({"path": "/{{ name }}/hello", "method": "GET", "handler": "hello"})
        self.logger.info("{{ name }} enabled")

    async def on_disable(self):
        self.context.api.unregister_route("/{{ name }}/hello", "GET")
        self.logger.info("{{ name }} disabled")

    async def hello(self, request=None):
        return {"message": "Hello from {{ name }}"}
'''

BASIC_README = """# {{ name }}

{{ description }}

## Development

```bash
pip install -r requirements-dev.txt
plugin-devkit dev .
plugin-devkit test .
plugin-devkit build . --production
```
"""

BASIC = PluginTemplate(
    name="basic",
    description="Minimal plugin with one route and lifecycle hooks",
    files={
        "plugin.yaml": BASIC_MANIFEST,
        "plugin.py": BASIC_PLUGIN,
        "README.md": BASIC_README,
        "requirements.txt": "# Runtime dependencies for {{ name }}\n",
        "requirements-dev.txt": REQUIREMENTS_DEV,
        "pytest.ini": PYTEST_INI,
        "tests/test_plugin.py": LIFECYCLE_TEST,
    },
    dependencies=["plugin-devkit"],
    instructions="cd {{ name }}\npip install -r requirements-dev.txt\nplugin-devkit dev .",
    variables=COMMON_VARIABLES,
)

# ---------------------------------------------------------------------------
# game-server
# ---------------------------------------------------------------------------

GAME_SERVER_MANIFEST = """name: {{ name }}
version: {{ version }}
author: {{ authorYaml }}
description: {{ descriptionYaml }}
permissions:
  read: true
  write: true
  database: true
  network: true
  routes: true
  hooks: true
apis:
  - path: /{{ name }}/servers/stats
    method: GET
    handler: server_stats
    auth: true
    description: Per-server event counts
    responses:
      - status: 200
        description: Stats keyed by server id
hooks:
  - name: {{ name }}-server-start
    type: after
    target: server.start
    handler: on_server_start
  - name: {{ name }}-server-stop
    type: after
    target: server.stop
    handler: on_server_stop
"""

GAME_SERVER_PLUGIN = '''"""{{ description }}"""

from devkit import PluginBase


class {{ className }}(PluginBase):
    """Records start/stop events for {{ gameType }} servers."""

    async def on_load(self):
        self.events_table = self.context.model("server_events")
        self.logger.info("{{ name }} loaded")

    async def on_enable(self):
        self.context.register_hook(
            {"name": "{{ name }}-server-start", "type": "after", "target": "server.start", "handler": "on_server_start"},
            self.on_server_start,
        )
        self.context.register_hook(
            {"name": "{{ name }}-server-stop", "type": "after", "target": "server.stop", "handler": "on_server_stop"},
            self.on_server_stop,
        )
        self.context.register_route({"path": "/{{ name }}/servers/stats", "method": "GET", "handler": "server_stats"})
        self.logger.info("{{ name }} enabled")

    async def on_disable(self):
        self.context.hooks.unregister("{{ name }}-server-start")
        self.context.hooks.unregister("{{ name }}-server-stop")
        self.logger.info("{{ name }} disabled")

    async def on_server_start(self, server):
        await self.events_table.create({"server_id": server["id"], "event": "start"})
        self.context.events.emit("{{ name }}:server-started", {"server_id": server["id"]})
        return server

    async def on_server_stop(self, server):
        await self.events_table.create({"server_id": server["id"], "event": "stop"})
        return server

    async def server_stats(self, request=None):
        stats = {}
        for record in await self.events_table.find_many():
            counts = stats.setdefault(str(record["server_id"]), {"start": 0, "stop": 0})
            counts[record["event"]] += 1
        return stats
'''

GAME_SERVER_TEST = LIFECYCLE_TEST + '''

def test_server_start_is_recorded():
    plugin, runtime = make_plugin()
    asyncio.run(plugin.on_load())
    asyncio.run(plugin.on_server_start({"id": 7}))
    assert runtime.events.was_emitted("{{ name }}:server-started")
    assert runtime.database.get_data("server_events")[0]["server_id"] == 7
'''

GAME_SERVER = PluginTemplate(
    name="game-server",
    description="Game server integration that records server events through hooks",
    files={
        "plugin.yaml": GAME_SERVER_MANIFEST,
        "plugin.py": GAME_SERVER_PLUGIN,
        "README.md": BASIC_README,
        "requirements.txt": "# Runtime dependencies for {{ name }}\n",
        "requirements-dev.txt": REQUIREMENTS_DEV,
        "pytest.ini": PYTEST_INI,
        "tests/test_plugin.py": GAME_SERVER_TEST,
        "config/default.yaml": "game_type: {{ gameType }}\n",
    },
    dependencies=["plugin-devkit"],
    instructions="cd {{ name }}\npip install -r requirements-dev.txt\nplugin-devkit test .",
    variables=COMMON_VARIABLES + [
        TemplateVariable(name="gameType", default="minecraft", description="Game the servers run"),
    ],
)

# ---------------------------------------------------------------------------
# web-component
# ---------------------------------------------------------------------------

WEB_COMPONENT_MANIFEST = """name: {{ name }}
version: {{ version }}
author: {{ authorYaml }}
description: {{ descriptionYaml }}
permissions:
  read: true
  routes: true
apis:
  - path: /{{ name }}/widget
    method: GET
    handler: widget
    description: Widget bootstrap data
scripts:
  build: npm run build
"""

WEB_COMPONENT_PLUGIN = '''"""{{ description }}"""

from devkit import PluginBase


class {{ className }}(PluginBase):
    async def on_enable(self):
        self.context.register_route({"path": "/{{ name }}/widget", "method": "GET", "handler": "widget"})
        self.logger.info("{{ name }} enabled")

    async def widget(self, request=None):
        return {"component": "{{ componentName }}", "script": "dist/{{ name }}.js"}
'''

WEB_COMPONENT_JS = """export class {{ componentName }} extends HTMLElement {
  connectedCallback() {
    this.innerHTML = '<div class="{{ name }}">{{ description }}</div>';
  }
}

customElements.define('{{ name }}-widget', {{ componentName }});
"""

WEBPACK_CONFIG = """const path = require('path');

module.exports = (env, argv) => ({
  entry: './components/{{ componentName }}.js',
  output: {
    path: path.resolve(__dirname, 'dist'),
    filename: '{{ name }}.js',
  },
  devtool: argv.devtool || false,
});
"""

PACKAGE_JSON = """{
  "name": "{{ name }}",
  "version": "{{ version }}",
  "private": true,
  "scripts": {
    "build": "webpack --mode production"
  },
  "devDependencies": {
    "webpack": "^5.0.0",
    "webpack-cli": "^5.0.0"
  }
}
"""

WEB_COMPONENT = PluginTemplate(
    name="web-component",
    description="Plugin shipping a browser widget bundled with webpack",
    files={
        "plugin.yaml": WEB_COMPONENT_MANIFEST,
        "plugin.py": WEB_COMPONENT_PLUGIN,
        "README.md": BASIC_README,
        "requirements.txt": "# Runtime dependencies for {{ name }}\n",
        "requirements-dev.txt": REQUIREMENTS_DEV,
        "pytest.ini": PYTEST_INI,
        "tests/test_plugin.py": LIFECYCLE_TEST,
        "components/{{ componentName }}.js": WEB_COMPONENT_JS,
        "webpack.config.js": WEBPACK_CONFIG,
        "package.json": PACKAGE_JSON,
        "assets/.gitkeep": "",
    },
    dependencies=["plugin-devkit", "webpack", "webpack-cli"],
    instructions="cd {{ name }}\nnpm install\npip install -r requirements-dev.txt\nplugin-devkit build .",
    variables=COMMON_VARIABLES,
)

BUILTIN_TEMPLATES = (BASIC, GAME_SERVER, WEB_COMPONENT)
