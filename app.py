import base64
import io
import logging

from flask import Flask, render_template, request, redirect, url_for, flash

import settings
from distance_matrix import DistanceMatrix, parse_coordinates, parse_distance_text
from tsp_solver import HeldKarpSolver, SolveError
from visualizer import build_route_map, format_route, render_tour_png

settings.configure_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = settings.SECRET_KEY


def read_matrix(req) -> DistanceMatrix:
    upload = req.files.get("matrix_file")
    if upload and upload.filename:
        text = upload.read().decode("utf-8")
    else:
        text = req.form.get("matrix_text", "")
    return parse_distance_text(text)


def read_coordinates(form) -> DistanceMatrix:
    coords = parse_coordinates(form.getlist("lat[]"), form.getlist("lon[]"))
    return DistanceMatrix.from_coordinates(coords)


def png_data_uri(matrix: DistanceMatrix, tour, cost) -> str:
    buf = io.BytesIO()
    render_tour_png(matrix.labels, tour, cost, buf, matrix.positions)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@app.route("/", methods=["GET", "POST"])
def index():
    if request.method == "POST":
        mode = request.form.get("mode", "matrix")
        try:
            if mode == "coordinates":
                matrix = read_coordinates(request.form)
            else:
                matrix = read_matrix(request)
            result = HeldKarpSolver().solve(matrix)
        except (ValueError, SolveError) as e:
            logger.info("Rejected %s input: %s", mode, e)
            flash(str(e), "error")
            return redirect(url_for("index"))

        order = result.tour
        dist = matrix.distances

        # Build Folium map
        route_html = build_route_map(matrix.labels, order, matrix.positions)._repr_html_()

        # Prepare itinerary INCLUDING return to start
        itinerary = []
        for i, node in enumerate(order):
            stop = {
                "visit": i + 1,
                "node": node,
                "label": matrix.labels[node],
                "leg": 0.0 if i == 0 else round(float(dist[order[i - 1]][node]), 3),
            }
            if matrix.positions is not None:
                stop["lat"], stop["lon"] = matrix.positions[node]
            itinerary.append(stop)

        return render_template(
            "results.html",
            route_html=route_html,
            route_png=png_data_uri(matrix, order, result.cost),
            route_text=format_route(matrix.labels, order),
            total_cost=round(result.cost, 3),
            unit="km" if mode == "coordinates" else "",
            itinerary=itinerary,
        )

    return render_template("index.html", max_points=settings.MAX_POINTS)


if __name__ == "__main__":
    app.run(debug=True)
