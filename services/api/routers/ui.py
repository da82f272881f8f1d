"""
Plantwatch — Embedded Dashboard UI Router

Serves the group dashboard as a single HTML page (Chart.js from CDN, no
build step). The page pulls the rendered view from /api/v1/groups/{permit}/view
every poll interval and applies it to the DOM: each device card is created
once and updated in place afterwards.
"""
import html
import json

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from auth import is_logged_in
from renderer import display_name, group_title
from routers.devices import session_names

router = APIRouter()


def _js(value) -> str:
    return json.dumps(value).replace("</", "<\\/")


def name_inputs(channel_count: int, names: list[str]) -> str:
    rows = []
    for index in range(channel_count):
        value = names[index] if index < len(names) else ""
        placeholder = display_name([], index)
        rows.append(
            f'<input name="name_{index + 1}" value="{html.escape(value)}" '
            f'placeholder="{html.escape(placeholder)}">'
        )
    return "\n    ".join(rows)


def group_links(groups: dict[str, list[str]]) -> str:
    return "\n    ".join(
        f'<a class="group-link" href="/ui?permit={html.escape(key)}">{html.escape(group_title(key))}</a>'
        for key in groups
    )


@router.get("/ui", response_class=HTMLResponse, include_in_schema=False)
async def dashboard_ui(request: Request, permit: str = ""):
    """Serve the dashboard for one group, or the group picker without one."""
    if not is_logged_in(request):
        return RedirectResponse(url="/login", status_code=303)

    dashboard = request.app.state.dashboard
    settings = dashboard.settings

    if not permit:
        return HTMLResponse(
            PICKER_HTML.replace("__GROUP_LINKS__", group_links(dashboard.groups))
        )

    channels = dashboard.groups.get(permit, [])
    page = (
        DASHBOARD_HTML
        .replace("__TITLE__", html.escape(group_title(permit)))
        .replace("__NAME_INPUTS__", name_inputs(len(channels), session_names(request, permit)))
        .replace("__PERMIT_JS__", _js(permit))
        .replace("__POLL_MS__", str(int(settings.POLL_INTERVAL_S * 1000)))
        .replace("__CLOCK_MS__", str(int(settings.CLOCK_TICK_S * 1000)))
        .replace("__AXES_JS__", _js({
            "x_min": settings.PLOT_X_MIN, "x_max": settings.PLOT_X_MAX,
            "y_min": settings.PLOT_Y_MIN, "y_max": settings.PLOT_Y_MAX,
        }))
    )
    return HTMLResponse(page)


BASE_CSS = """
*,*::before,*::after{box-sizing:border-box;margin:0;padding:0}
body{font-family:-apple-system,'Segoe UI',sans-serif;background:#0a0e17;color:#f1f5f9;line-height:1.5;min-height:100vh}
.header{display:flex;align-items:center;justify-content:space-between;padding:.75rem 1.5rem;background:#111827;border-bottom:1px solid rgba(148,163,184,.1)}
.header-title{font-size:1.125rem;font-weight:700}
.header a{color:#94a3b8;font-size:.8125rem;text-decoration:none}
.main{padding:1.5rem;display:flex;flex-direction:column;gap:1.5rem}
.panel{background:#151d2e;border:1px solid rgba(148,163,184,.1);border-radius:14px;padding:1rem 1.25rem}
"""

PICKER_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Plantwatch</title>
<style>""" + BASE_CSS + """
.group-link{display:block;padding:.75rem 1rem;margin-bottom:.5rem;border-radius:10px;background:#1a2235;color:#f1f5f9;text-decoration:none}
.group-link:hover{background:#1c2740}
</style>
</head>
<body>
<div class="header"><span class="header-title">Plantwatch</span><a href="/logout">Logout</a></div>
<div class="main">
  <div class="panel">
    __GROUP_LINKS__
  </div>
</div>
</body>
</html>
"""

DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Plantwatch — __TITLE__</title>
<script src="https://cdn.jsdelivr.net/npm/chart.js@4"></script>
<style>""" + BASE_CSS + """
#deviceContainer{display:grid;grid-template-columns:repeat(auto-fill,minmax(220px,1fr));gap:1rem}
.device{position:relative;background:#1a2235;border:1px solid rgba(148,163,184,.15);border-radius:10px;padding:1rem 1rem 1rem 3rem}
.traffic-light{position:absolute;left:1rem;top:1.1rem;width:18px;height:18px;border-radius:50%}
.traffic-light.red{background:#ef4444;box-shadow:0 0 8px #ef4444}
.traffic-light.orange{background:#f59e0b;box-shadow:0 0 8px #f59e0b}
.traffic-light.green{background:#10b981;box-shadow:0 0 8px #10b981}
#deviceForm{display:flex;flex-wrap:wrap;gap:.5rem}
#deviceForm input{padding:.5rem .75rem;border-radius:8px;border:1px solid rgba(148,163,184,.25);background:#1a2235;color:#f1f5f9}
#deviceForm button{padding:.5rem 1rem;border:0;border-radius:8px;background:#3b82f6;color:#fff;cursor:pointer}
#lastUpdated{font-size:.75rem;color:#64748b;font-family:monospace}
</style>
</head>
<body>
<div class="header">
  <span class="header-title" id="permitTitle">__TITLE__</span>
  <span id="lastUpdated"></span>
  <span><a href="/ui">Groups</a> · <a href="/logout">Logout</a></span>
</div>
<div class="main">
  <form id="deviceForm" class="panel">
    __NAME_INPUTS__
    <button type="submit">Set names</button>
  </form>
  <div id="deviceContainer"></div>
  <div class="panel"><canvas id="movementChart" height="120"></canvas></div>
</div>
<script>
const PERMIT = __PERMIT_JS__;
const POLL_MS = __POLL_MS__;
const CLOCK_MS = __CLOCK_MS__;
const AXES = __AXES_JS__;
const VIEW_URL = `/api/v1/groups/${encodeURIComponent(PERMIT)}/view`;
const NAMES_URL = `/api/v1/groups/${encodeURIComponent(PERMIT)}/names`;
let scatterChart = null;
let legendItems = [];

function initializeScatterPlot() {
  const ctx = document.getElementById('movementChart').getContext('2d');
  scatterChart = new Chart(ctx, {
    type: 'scatter',
    data: {datasets: [{
      label: 'Devices',
      data: [],
      backgroundColor: (c) => c.raw ? c.raw.color : 'red',
      pointStyle: (c) => c.raw ? c.raw.pointStyle : 'circle',
      pointRadius: 8,
    }]},
    options: {
      animation: false,
      scales: {
        x: {type: 'linear', position: 'bottom', min: AXES.x_min, max: AXES.x_max},
        y: {type: 'linear', min: AXES.y_min, max: AXES.y_max},
      },
      plugins: {
        legend: {display: true, labels: {usePointStyle: true, generateLabels: () => legendItems}},
        tooltip: {callbacks: {label: (c) => `${c.raw.label}: (${c.raw.x}, ${c.raw.y})`}},
      },
    },
  });
}

function renderOrUpdateDevice(card) {
  const container = document.getElementById('deviceContainer');
  let el = container.querySelector(`.device[data-index="${card.index}"]`);
  if (!el) {
    el = document.createElement('div');
    el.classList.add('device');
    el.setAttribute('data-index', card.index);
    const light = document.createElement('div');
    light.classList.add('traffic-light');
    const name = document.createElement('strong');
    name.classList.add('device-name');
    const temperature = document.createElement('span');
    temperature.classList.add('device-temperature');
    const movement = document.createElement('span');
    movement.classList.add('device-movement');
    el.append(light, name, document.createElement('br'), temperature, document.createElement('br'), movement);
    container.appendChild(el);
  }
  el.querySelector('.traffic-light').className = 'traffic-light ' + card.light;
  el.querySelector('.device-name').textContent = card.name;
  el.querySelector('.device-temperature').textContent = card.temperature_text;
  el.querySelector('.device-movement').textContent = card.movement_text;
}

function updateScatterPlot(view) {
  if (!scatterChart) {
    console.error('scatterChart is not initialized');
    return;
  }
  legendItems = view.legend;
  scatterChart.data.datasets[0].data = view.points;
  scatterChart.update();
}

function applyView(view) {
  view.cards.forEach(renderOrUpdateDevice);
  updateScatterPlot(view);
}

async function loadView(request) {
  try {
    const response = await fetch(request || VIEW_URL);
    if (response.status === 401) {
      window.location.href = '/login';
      return;
    }
    if (!response.ok) {
      throw new Error(`view request failed: ${response.status}`);
    }
    applyView(await response.json());
  } catch (error) {
    console.error('Error fetching device data:', error);
  }
}

function updateLastUpdatedTime() {
  document.getElementById('lastUpdated').textContent = `Last Updated: ${new Date().toLocaleTimeString()}`;
}

document.addEventListener('DOMContentLoaded', function () {
  try {
    initializeScatterPlot();
  } catch (error) {
    console.error('scatter plot unavailable:', error);
  }
  loadView();
  setInterval(loadView, POLL_MS);
  updateLastUpdatedTime();
  setInterval(updateLastUpdatedTime, CLOCK_MS);

  const form = document.getElementById('deviceForm');
  form.addEventListener('submit', function (event) {
    event.preventDefault();
    loadView(new Request(NAMES_URL, {method: 'POST', body: new FormData(form)}));
  });
});
</script>
</body>
</html>
"""
