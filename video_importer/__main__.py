from video_importer.cli import main

main()
