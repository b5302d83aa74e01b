"""Sheet-music segmentation and pitch inference library.

This package locates the sections, measures and note heads of a scanned
sheet-music image and infers a pitch letter for every note head from its
vertical position on the staff. It is a purely geometric pipeline built on
OpenCV: no machine learning and no manual correction of results.

The main processing pipeline consists of:
1. Binarization (adaptive Gaussian, Otsu or fixed threshold)
2. Section localization by template matching and non-maximum suppression
3. Staff-line detection and the 9-entry staff reference table
4. Barline detection and measure splitting
5. Note-head extraction by contour analysis
6. Pitch-letter mapping against the reference table

Example:
    Basic usage through the pipeline API:

    >>> from sheet_to_notes.pipeline import process_file
    >>> from sheet_to_notes.models import ProcessingParameters
    >>>
    >>> params = ProcessingParameters(templateFolder="templates/")
    >>> report = process_file("sheet.png", params, output_dir="out/")
    >>> [note.letter for note in report.notes]
"""
