"""
Entity CRUD pages.

One blueprint per entity, all built by `create_entity_blueprint`:

    GET  /<entity>                    page shell (filters + table + dialog slot)
    GET  /<entity>/partials/table     HTMX table; replays ?event=&value= interactions
    GET  /<entity>/new                add dialog
    POST /<entity>/new                create
    GET  /<entity>/<id>/edit          edit dialog
    POST /<entity>/<id>/edit          update
    POST /<entity>/<id>/delete        delete (requires confirmed=true)
    GET  /<entity>/options            SearchableSelect option search
    GET  /<entity>/options/select     SearchableSelect click

Table state (page, per_page, sort, filters) always travels in the query
string, so every response can rebuild the controller exactly.
"""

import logging
from typing import Any, Dict, Type

from flask import Blueprint, abort, render_template, request, url_for

from . import web
from .controllers import CONTROLLERS, QUICK_CREATE_SOURCES, PageController, PrintRequestController
from .searchable_select import Option, SearchableSelect

logger = logging.getLogger(__name__)

PICKER_ENDPOINTS = {"options": "options", "select": "select_option"}


def blueprint_name(entity: str) -> str:
    return entity.replace("-", "_")


def picker_url(source: str, kind: str, **params: Any) -> str:
    """URL of a source entity's option search / option click endpoint."""
    return url_for(f"{blueprint_name(source)}.{PICKER_ENDPOINTS[kind]}", **params)


def create_entity_blueprint(entity: str, controller_class: Type[PageController]) -> Blueprint:
    """Build the CRUD blueprint of one entity."""
    name = blueprint_name(entity)
    bp = Blueprint(name, __name__, url_prefix=f"/{entity}")

    def build_controller() -> PageController:
        controller = controller_class(web.get_backend())
        controller.load_args(request.args)

        def link_builder(event: str, **params: Any) -> str:
            state = controller.state_params()
            if event in ("page", "sort", "per_page"):
                if "value" in params:
                    state["value"] = params["value"]
                return url_for(f"{name}.table_partial", event=event, **state)
            if event == "add":
                return url_for(f"{name}.new", **state)
            if event in ("edit", "delete"):
                return url_for(f"{name}.{event}", item_id=params["id"], **state)
            return None

        controller.link_builder = link_builder
        return controller

    def render_table(controller: PageController, dialog_closed: bool = False):
        """Table partial; after a dialog submit the table goes out-of-band and the dialog empties."""
        return render_template(
            "partials/table_response.html",
            controller=controller,
            table=controller.table(),
            dialog_closed=dialog_closed,
        )

    def form_action(controller: PageController) -> str:
        state = controller.state_params()
        if controller.editing_item is None:
            return url_for(f"{name}.new", **state)
        item_id = getattr(controller.editing_item, "id", controller.editing_item)
        return url_for(f"{name}.edit", item_id=item_id, **state)

    def render_dialog(controller: PageController):
        return render_template(
            "partials/dialog.html",
            controller=controller,
            pickers=controller.form_pickers(picker_url),
            form_action=form_action(controller),
        )

    @bp.route("", methods=["GET"])
    @web.login_required
    def index():
        """Render the page shell; the table loads itself through the partial."""
        controller = build_controller()
        controller.loading = True
        return render_template(
            "pages/entity.html",
            controller=controller,
            table=controller.table(),
            filter_panel=controller.filter_panel if controller.filter_panel_class else None,
            filter_pickers=controller.filter_pickers(picker_url),
        )

    @bp.route("/partials/table", methods=["GET"])
    @web.login_required
    def table_partial():
        """
        HTMX partial: re-render the table.

        Query Parameters:
            event: page | sort | per_page | filter
            value: Event argument (page number, sort key, page size)
        """
        controller = build_controller()
        event = request.args.get("event")
        if event == "filter":
            controller.change_filters(controller.filters)
        else:
            controller.table().dispatch(event, request.args.get("value"))
        if not controller.fetched:
            controller.fetch()
        return render_table(controller)

    @bp.route("/new", methods=["GET", "POST"])
    @web.login_required
    def new():
        """Add dialog (GET) and create (POST)."""
        controller = build_controller()
        if request.method == "GET":
            controller.open_add()
            return render_dialog(controller)

        if controller.create(request.form):
            return render_table(controller, dialog_closed=True)
        return render_dialog(controller)

    @bp.route("/<int:item_id>/edit", methods=["GET", "POST"])
    @web.login_required
    def edit(item_id: int):
        """Edit dialog (GET) and update (POST)."""
        controller = build_controller()
        if request.method == "GET":
            controller.open_edit(controller.load_item(item_id))
            return render_dialog(controller)

        if controller.update(item_id, request.form):
            return render_table(controller, dialog_closed=True)
        return render_dialog(controller)

    @bp.route("/<int:item_id>/delete", methods=["POST"])
    @web.login_required
    def delete(item_id: int):
        """Delete after confirmation and re-render the table."""
        controller = build_controller()
        confirmed = request.form.get("confirmed") == "true"
        if not confirmed:
            logger.info(f"Delete of {entity} #{item_id} not confirmed")
        controller.delete(item_id, confirmed=confirmed)
        if not controller.fetched:
            controller.fetch()
        return render_table(controller)

    @bp.route("/options", methods=["GET"])
    @web.login_required
    def options():
        """
        HTMX partial: option list for a SearchableSelect.

        Query Parameters:
            q: Search text
            name: Field name of the widget
            value: Currently selected value
            value_field: Entity attribute used as option value (id or name)
        """
        controller = build_controller()
        widget_name = request.args.get("name", "")
        value_field = request.args.get("value_field", "id")
        if value_field not in ("id", "name"):
            abort(400)
        select = SearchableSelect(
            name=widget_name,
            value=request.args.get("value", ""),
            options=controller.load_options(entity, request.args.get("q", ""), value_field=value_field),
            placeholder=request.args.get("placeholder", "Select an option..."),
            select_url=picker_url(entity, "select", name=widget_name, value_field=value_field,
                                  placeholder=request.args.get("placeholder", "")),
        )
        return render_template("components/select_options.html", select=select)

    @bp.route("/options/select", methods=["GET"])
    @web.login_required
    def select_option():
        """
        HTMX partial: apply a click on an option and re-render the widget.

        Query Parameters:
            name: Field name of the widget
            value: Clicked option value
            label: Clicked option label
            current: Value selected before the click
        """
        controller = build_controller()
        widget_name = request.args.get("name", "")
        value_field = request.args.get("value_field", "id")
        if value_field not in ("id", "name"):
            abort(400)
        clicked = Option(request.args.get("value", ""), request.args.get("label", ""))
        placeholder = request.args.get("placeholder") or "Select an option..."

        options = controller.load_options(entity, value_field=value_field)
        if clicked not in options:
            options.append(clicked)
        select = SearchableSelect(
            name=widget_name,
            value=request.args.get("current", ""),
            options=options,
            placeholder=placeholder,
            search_url=picker_url(entity, "options", name=widget_name, value_field=value_field,
                                  placeholder=placeholder),
            select_url=picker_url(entity, "select", name=widget_name, value_field=value_field,
                                  placeholder=placeholder),
        )
        select.select(clicked.value)
        return render_template("components/searchable_select.html", select=select)

    if issubclass(controller_class, PrintRequestController):

        @bp.route("/quick-create/<field>", methods=["POST"])
        @web.login_required
        def quick_create(field: str):
            """Create a requester/approver inline and select it in the dialog picker."""
            controller = build_controller()
            try:
                select = controller.quick_create(field, request.form)
            except ValueError:
                abort(404)
            if select is None:
                errors: Dict[str, str] = controller.form_errors
                return render_template(
                    "partials/quick_create_result.html",
                    select=None,
                    message=errors.get("name", "Could not create record"),
                )
            source = QUICK_CREATE_SOURCES[field]
            select.search_url = picker_url(source, "options", name=field, placeholder=select.placeholder)
            select.select_url = picker_url(source, "select", name=field, placeholder=select.placeholder)
            return render_template("partials/quick_create_result.html", select=select, message="")

    return bp


def register_entity_blueprints(app) -> None:
    for entity, controller_class in CONTROLLERS.items():
        app.register_blueprint(create_entity_blueprint(entity, controller_class))
