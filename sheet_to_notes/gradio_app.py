"""Gradio web interface for tuning the sheet segmentation pipeline.

This module creates and configures a Gradio application where a section
strip can be uploaded and the thresholds of each stage adjusted while the
overlays update in real time. It is a visual QA tool: results are never
corrected by hand, only the parameters that produce them.

The interface is organized into sections corresponding to each stage:
- Binarization mode
- Staff-line detection (opening width, merge distance)
- Barline detection (merge distance, Hough votes, segment length)
- Glyph extraction (area band, aspect ratio, circularity)
"""

import logging

import gradio as gr

from sheet_to_notes.app_state import register_upload
from sheet_to_notes.models.settings_models import (
    BarlineParams,
    GlyphParams,
    StaffParams,
)
from sheet_to_notes.ui_updates import update_binary_view, update_section_view

logger = logging.getLogger(__name__)

mode_descriptions = {
    "otsu": "Global threshold picked from the histogram; robust on clean scans.",
    "adaptive-gaussian": "Local Gaussian-weighted threshold; handles uneven lighting.",
    "fixed": "Fixed grayscale cutoff of 128.",
}


def create_gradio_interface() -> gr.Blocks:
    """Create and configure the tuning web interface.

    Returns:
        Configured Gradio Blocks interface ready for launching.
    """
    staff_defaults = StaffParams()
    barline_defaults = BarlineParams()
    glyph_defaults = GlyphParams()

    with gr.Blocks(title="Sheet to Notes") as interface:
        gr.Markdown("# Sheet to Notes")
        gr.Markdown(
            "Upload one staff strip, adjust the stage parameters and check "
            "the overlays and inferred pitch letters."
        )

        # Holds the current image ID across callbacks
        image_state = gr.State(None)

        with gr.Row():
            with gr.Column(scale=1):
                upload = gr.Image(label="Section Strip", type="numpy", height=200)

                # 1. Binarization
                with gr.Group():
                    gr.Markdown("### 1. Binarization")
                    mode = gr.Radio(
                        choices=list(mode_descriptions.keys()),
                        value="otsu",
                        label="Threshold Mode",
                    )
                    mode_description = gr.Markdown(mode_descriptions["otsu"])
                    with gr.Row():
                        original_view = gr.Image(label="Original", height=200)
                        binary_output = gr.Image(label="Binary Mask", height=200)

                # 2. Staff lines
                with gr.Group():
                    gr.Markdown("### 2. Staff Lines")
                    with gr.Row():
                        staff_kernel_width = gr.Slider(
                            10,
                            200,
                            value=staff_defaults.kernel_width,
                            step=1,
                            label="Line Kernel Width",
                            info="Shorter horizontal runs are not staff lines.",
                        )
                        staff_proximity = gr.Slider(
                            1,
                            40,
                            value=staff_defaults.staff_line_proximity_px,
                            step=1,
                            label="Staff Line Proximity (px)",
                            info="Rows closer than this merge into one line.",
                        )
                    with gr.Row():
                        staff_viz = gr.Image(label="Reference Lines", height=200)
                        staff_histogram = gr.Plot(label="Row Histogram")

                # 3. Barlines
                with gr.Group():
                    gr.Markdown("### 3. Barlines")
                    with gr.Row():
                        barline_proximity = gr.Slider(
                            1,
                            100,
                            value=barline_defaults.barline_proximity_px,
                            step=1,
                            label="Barline Proximity (px)",
                            info="Barlines closer than this merge into one.",
                        )
                        min_votes = gr.Slider(
                            5,
                            200,
                            value=barline_defaults.min_votes,
                            step=1,
                            label="Hough Votes",
                        )
                        min_line_length = gr.Slider(
                            5,
                            200,
                            value=barline_defaults.min_line_length,
                            step=1,
                            label="Min Segment Length",
                        )
                    barline_viz = gr.Image(label="Barlines", height=200)

                # 4. Glyphs
                with gr.Group():
                    gr.Markdown("### 4. Glyphs and Pitches")
                    with gr.Row():
                        min_area = gr.Slider(
                            1,
                            200,
                            value=glyph_defaults.min_area,
                            step=1,
                            label="Min Area",
                        )
                        max_area = gr.Slider(
                            10,
                            1000,
                            value=glyph_defaults.max_area,
                            step=5,
                            label="Max Area",
                        )
                    with gr.Row():
                        aspect_ratio = gr.Slider(
                            0.0,
                            2.0,
                            value=glyph_defaults.aspect_ratio_threshold,
                            step=0.01,
                            label="Min Aspect Ratio",
                        )
                        circularity = gr.Slider(
                            0.0,
                            1.0,
                            value=glyph_defaults.circularity_threshold,
                            step=0.01,
                            label="Min Circularity",
                        )
                    glyph_viz = gr.Image(label="Glyphs", height=200)
                    summary = gr.Textbox(label="Summary", value="Upload a section strip")
                    notes_text = gr.Textbox(label="Pitch Letters", lines=4)

        # Order matches build_parameters
        section_params = [
            mode,
            staff_kernel_width,
            staff_proximity,
            barline_proximity,
            min_votes,
            min_line_length,
            min_area,
            max_area,
            aspect_ratio,
            circularity,
        ]
        section_outputs = [
            staff_viz,
            barline_viz,
            glyph_viz,
            staff_histogram,
            summary,
            notes_text,
        ]

        upload.change(fn=register_upload, inputs=[upload], outputs=[image_state])
        image_state.change(
            fn=update_binary_view,
            inputs=[image_state, mode],
            outputs=[original_view, binary_output],
        )
        image_state.change(
            fn=update_section_view,
            inputs=[image_state] + section_params,
            outputs=section_outputs,
        )

        mode.change(
            fn=lambda x: mode_descriptions[x],
            inputs=[mode],
            outputs=[mode_description],
        )
        mode.change(
            fn=update_binary_view,
            inputs=[image_state, mode],
            outputs=[original_view, binary_output],
        )
        for p in section_params:
            p.change(
                fn=update_section_view,
                inputs=[image_state] + section_params,
                outputs=section_outputs,
            )

    return interface


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Reduce logging verbosity for asyncio to suppress connection noise
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    demo = create_gradio_interface()
    demo.launch(share=False, show_error=True, server_port=7860)
