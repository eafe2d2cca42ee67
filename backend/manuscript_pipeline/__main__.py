from manuscript_pipeline.cli import main

main()
